from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict


def new_build_state(*, source_url: str, sha256: str, image_suffix: str) -> Dict[str, Any]:
    return {
        "inputs": {
            "source_url": source_url,
            "sha256": sha256,
            "image_suffix": image_suffix,
        },
        "execution": {
            "current_step": None,
            "completed_steps": [],
            "loop_device": None,
            "errors": [],
        },
        "outputs": {},
    }


def save_build_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def mark_completed(state: Dict[str, Any], step_id: str) -> None:
    completed = state.setdefault("execution", {}).setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def record_error(state: Dict[str, Any], error: BaseException) -> None:
    exe = state.setdefault("execution", {})
    exe.setdefault("errors", []).append(
        {
            "step": exe.get("current_step"),
            "error": str(error) or type(error).__name__,
        }
    )
