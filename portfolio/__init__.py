"""Portfolio valuation and export."""
from portfolio.valuator import PortfolioValuator, valuate, valuate_holding, profit_loss_pct
from portfolio.export import export_valuation
