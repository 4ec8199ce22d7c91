"""Export a portfolio valuation to CSV or JSON."""
import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger("coinwatch.portfolio.export")

FORMATS = ("csv", "json")


def export_valuation(valuation, path, fmt="csv"):
    """Write per-holding rows (and totals, for JSON) to ``path``. Returns the path or None."""
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    rows = valuation.to_rows()
    if not rows:
        return None

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "csv":
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=rows[0].keys())
            writer.writeheader()
            writer.writerows(rows)
    else:
        payload = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "holdings": rows,
            "totals": {
                "cost": str(valuation.total_cost),
                "value": str(valuation.total_value),
                "profit_loss": str(valuation.profit_loss),
                "profit_loss_pct": str(valuation.profit_loss_pct),
                "partial": valuation.partial,
                "missing_prices": list(valuation.missing_prices),
            },
        }
        with open(path, "w") as f:
            json.dump(payload, f, indent=2)
    logger.info(f"Exported {len(rows)} holdings to {path}")
    return str(path)
