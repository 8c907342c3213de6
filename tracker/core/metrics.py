"""Request metrics collected for the monitoring endpoints."""

import threading
from collections import Counter, deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional


@dataclass
class RequestEntry:
    """One observed API request."""
    timestamp: datetime
    method: str
    path: str
    status_code: int
    response_time_ms: float
    client_ip: str = "unknown"
    order_no: Optional[str] = None
    tracking_no: Optional[str] = None

    @property
    def success(self) -> bool:
        return 200 <= self.status_code < 400

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["success"] = self.success
        return data


@dataclass
class UsageEntry:
    """A usage beacon posted by a front end."""
    timestamp: datetime
    client_ip: str
    payload: Dict[str, Any] = field(default_factory=dict)


class MetricsCollector:
    """
    Bounded, windowed store of request metrics.

    One collector is owned by the application and handed to the middleware and
    endpoints that need it. Entries older than ``window`` are pruned on every
    write; ``reset()`` starts a fresh window. Every statistic, including the
    most queried order, is derived from the retained entries only.
    """

    def __init__(
        self,
        capacity: int = 1000,
        usage_capacity: int = 500,
        window: Optional[timedelta] = timedelta(days=31),
        tracked_path: str = "/api/tracking",
        clock: Callable[[], datetime] = datetime.now
    ):
        self.capacity = capacity
        self.window = window
        self.tracked_path = tracked_path
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: Deque[RequestEntry] = deque(maxlen=capacity)
        self._usage: Deque[UsageEntry] = deque(maxlen=usage_capacity)
        self._window_started = clock()

    @property
    def window_started(self) -> datetime:
        return self._window_started

    def record_request(
        self,
        method: str,
        path: str,
        status_code: int,
        response_time_ms: float,
        client_ip: str = "unknown",
        order_no: Optional[str] = None,
        tracking_no: Optional[str] = None
    ) -> RequestEntry:
        """Store one request observation."""
        entry = RequestEntry(
            timestamp=self._clock(),
            method=method,
            path=path,
            status_code=status_code,
            response_time_ms=round(response_time_ms, 2),
            client_ip=client_ip,
            order_no=order_no,
            tracking_no=tracking_no,
        )
        with self._lock:
            self._requests.append(entry)
            self._prune(entry.timestamp)
        return entry

    def record_usage(self, payload: Dict[str, Any], client_ip: str = "unknown") -> UsageEntry:
        """Store a usage beacon."""
        entry = UsageEntry(timestamp=self._clock(), client_ip=client_ip, payload=dict(payload))
        with self._lock:
            self._usage.append(entry)
        return entry

    def usage_count(self) -> int:
        with self._lock:
            return len(self._usage)

    def reset(self) -> None:
        """Discard everything and start a new window."""
        with self._lock:
            self._requests.clear()
            self._usage.clear()
            self._window_started = self._clock()

    def _prune(self, now: datetime) -> None:
        if self.window is None:
            return
        cutoff = now - self.window
        while self._requests and self._requests[0].timestamp < cutoff:
            self._requests.popleft()

    def stats(self, now: Optional[datetime] = None, recent: int = 10) -> Dict[str, Any]:
        """Summarize the current window."""
        now = now or self._clock()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today.replace(day=1)

        with self._lock:
            requests: List[RequestEntry] = list(self._requests)

        tracking = [entry for entry in requests if entry.path == self.tracked_path]
        order_counts = Counter(entry.order_no for entry in tracking if entry.order_no)
        successful = [entry for entry in tracking if entry.success]
        average = (
            sum(entry.response_time_ms for entry in tracking) / len(tracking)
            if tracking else 0.0
        )
        success_rate = len(successful) / len(tracking) * 100 if tracking else 0.0

        top_order_no, top_order_count = "-", 0
        if order_counts:
            top_order_no, top_order_count = order_counts.most_common(1)[0]

        uptime_seconds = int((now - self._window_started).total_seconds())

        return {
            "system": {
                "window_started": self._window_started.isoformat(),
                "uptime_seconds": max(uptime_seconds, 0),
                "total_requests": len(requests),
            },
            "today": {
                "queries": sum(1 for entry in tracking if entry.timestamp >= today),
                "requests": sum(1 for entry in requests if entry.timestamp >= today),
            },
            "this_month": {
                "queries": sum(1 for entry in tracking if entry.timestamp >= month_start),
                "requests": sum(1 for entry in requests if entry.timestamp >= month_start),
            },
            "tracking": {
                "total_queries": len(tracking),
                "successful_queries": len(successful),
                "failed_queries": len(tracking) - len(successful),
                "success_rate": f"{success_rate:.1f}%",
                "average_response_time": f"{round(average)}ms",
                "top_order_no": top_order_no,
                "top_order_count": top_order_count,
            },
            "recent_requests": [entry.to_dict() for entry in reversed(requests[-recent:])] if recent > 0 else [],
        }
