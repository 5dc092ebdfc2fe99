import json
import os
from typing import Any, Dict, Optional


class ResultSink:
    def __init__(self, console: bool = False) -> None:
        self.console = console

    def write(self, report: Dict[str, Any], path: Optional[str] = None) -> None:
        if self.console:
            print(json.dumps(report, indent=2))

        if path:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2)
