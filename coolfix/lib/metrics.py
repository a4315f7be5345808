"""
Prometheus-compatible metrics for observability.

Tracks booking lifecycle and notification delivery:
- Bookings created (by source)
- Status transitions (by from/to state and actor)
- Notification sends and failures (by event type and channel)
- Admin email-link actions (by scope and outcome)

Usage:
    from coolfix.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings_created(source="public")
    metrics.increment_transitions(from_status="pending", to_status="confirmed", actor="admin_link")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style counter collector.

    Thread-safe for concurrent increments; notification dispatch runs in
    background threads while requests keep counting.
    """

    HELP_TEXTS = {
        "bookings_created_total": "Total number of bookings created",
        "booking_transitions_total": "Total number of applied booking status transitions",
        "notifications_sent_total": "Total number of notifications handed to a transport",
        "notifications_failed_total": "Total number of notifications that failed to send",
        "admin_link_actions_total": "Total number of admin email link clicks by outcome",
    }

    def __init__(self):
        self._lock = Lock()

        # key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Booking Metrics =====

    def increment_bookings_created(self, source: str, amount: int = 1):
        """
        Increment bookings created counter.

        Args:
            source: Creation path (public, linked, authenticated)
            amount: Increment amount (default 1)
        """
        self._increment("bookings_created_total", {"source": source.lower()}, amount)

    def increment_transitions(self, from_status: str, to_status: str, actor: str, amount: int = 1):
        """Increment applied status transitions."""
        labels = {
            "from_status": from_status.lower(),
            "to_status": to_status.lower(),
            "actor": actor.lower(),
        }
        self._increment("booking_transitions_total", labels, amount)

    # ===== Notification Metrics =====

    def increment_notifications_sent(self, event_type: str, channel: str, amount: int = 1):
        labels = {"event_type": event_type.lower(), "channel": channel.upper()}
        self._increment("notifications_sent_total", labels, amount)

    def increment_notifications_failed(self, event_type: str, channel: str, reason: str = "unknown", amount: int = 1):
        labels = {
            "event_type": event_type.lower(),
            "channel": channel.upper(),
            "reason": reason.lower(),
        }
        self._increment("notifications_failed_total", labels, amount)

    def increment_admin_link_actions(self, scope: str, outcome: str, amount: int = 1):
        """
        Increment admin email link clicks.

        Args:
            scope: admin-confirm or admin-cancel
            outcome: applied, already_done, not_allowed, expired, invalid, not_found, conflict
        """
        labels = {"scope": scope.lower(), "outcome": outcome.lower()}
        self._increment("admin_link_actions_total", labels, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of a specific counter."""
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
