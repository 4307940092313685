import logging
import time
from typing import Dict, Callable, Any

logger = logging.getLogger("health")

class HealthRegistry:
    """Named readiness checks, evaluated on every /readyz call."""

    def __init__(self):
        self._checks: Dict[str, Callable[[], bool]] = {}

    def add_check(self, name: str, check_func: Callable[[], bool]):
        self._checks[name] = check_func

    def _run_check(self, name: str, check: Callable[[], bool]) -> Dict[str, Any]:
        start = time.monotonic()
        try:
            passed = bool(check())
        except Exception as e:
            logger.error(f"Health check {name} raised: {e}")
            return {"status": "error", "error": str(e)}
        return {
            "status": "ok" if passed else "fail",
            "duration_ms": round((time.monotonic() - start) * 1000, 3),
        }

    def check_health(self) -> Dict[str, Any]:
        results = {name: self._run_check(name, check) for name, check in self._checks.items()}
        healthy = all(result["status"] == "ok" for result in results.values())
        return {"status": "ok" if healthy else "fail", "checks": results}
