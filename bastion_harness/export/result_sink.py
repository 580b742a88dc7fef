import json
import os
from typing import Optional


class ResultSink:
    def __init__(self, console: bool = False, json_path: Optional[str] = None) -> None:
        self.console = console
        self.json_path = json_path

    def write(self, report: dict) -> None:
        if self.console:
            print(json.dumps(report, indent=2))

        if self.json_path:
            os.makedirs(os.path.dirname(self.json_path) or ".", exist_ok=True)
            with open(self.json_path, "w", encoding="utf-8") as f:
                json.dump(report, f, indent=2)
