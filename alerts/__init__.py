"""Alert system module."""
from alerts.evaluator import AlertEvaluator, EvaluationReport
from alerts.channels import NotificationSink, ConsoleChannel, FileChannel, HistoryChannel
