import json
import datetime
from typing import Any, Dict


class NdjsonEmitter:
    """Emitter producing NDJSON bytes for parser events"""

    def emit(self, event: Dict[str, Any], session_id: str = "") -> bytes:
        # error events carry the exception itself next to its to_dict() fields
        data = {k: v for k, v in (event.get("data") or {}).items() if not isinstance(v, BaseException)}
        out = {
            "type": str(event.get("type", "")),
            "session_id": event.get("session_id", session_id),
            "data": data,
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        return (json.dumps(out, default=str) + "\n").encode("utf-8")
