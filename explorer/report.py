# report.py
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

import yaml

from .constants import logger, DEFAULT_OUTPUT, FORM_TAGS, INTERACTIVE_TAGS
from .models import CapturedElement, ExplorationContext, ExplorationReport
from .triggers import TRIGGER_SELECTOR_VERSION


def compute_statistics(elements: Iterable[CapturedElement]) -> Dict[str, Any]:
    stats = {
        "by_tag": {},
        "by_type": {},
        "interactive_elements": 0,
        "form_elements": 0,
        "required_elements": 0,
        "disabled_elements": 0,
        "visible_elements": 0,
    }
    for element in elements:
        type_ = element.type or "none"
        stats["by_tag"][element.tag] = stats["by_tag"].get(element.tag, 0) + 1
        stats["by_type"][type_] = stats["by_type"].get(type_, 0) + 1

        if element.tag in FORM_TAGS:
            stats["form_elements"] += 1
        if element.tag in INTERACTIVE_TAGS:
            stats["interactive_elements"] += 1
        if element.required:
            stats["required_elements"] += 1
        if element.disabled:
            stats["disabled_elements"] += 1
        if element.details.visibility.get("visible"):
            stats["visible_elements"] += 1
    return stats


def build_report(context: ExplorationContext) -> ExplorationReport:
    document = context.document
    width, height = document.viewport
    elements = list(context.results)
    errors = list(context.errors)

    metadata = {
        "timestamp": datetime.now().isoformat(),
        "execution_time": f"{context.elapsed_ms}ms",
        "url": document.url,
        "title": document.title,
        "total_elements": len(elements),
        "total_interactions": context.iterations,
        "initial_triggers": context.initial_triggers,
        "done_triggers": context.registry.done_trigger_count,
        "errors": len(errors),
        "user_agent": document.user_agent,
        "viewport": {"width": width, "height": height},
        "config": context.config.to_dict(),
        "trigger_selector_version": TRIGGER_SELECTOR_VERSION,
    }
    return ExplorationReport(
        metadata=metadata,
        elements=elements,
        errors=errors,
        statistics=compute_statistics(elements),
    )


def summarize(report: ExplorationReport) -> List[str]:
    meta = report.metadata
    return [
        "DOM collection complete!",
        f"Collected {meta['total_elements']} elements in {meta['execution_time']}",
        f"Performed {meta['total_interactions']} interactions",
        f"{meta['errors']} errors encountered",
    ]


def export_report(report: ExplorationReport, path: Union[str, Path] = DEFAULT_OUTPUT, fmt: str = "json") -> Path:
    path = Path(path)
    data = report.to_dict()
    if fmt == "json":
        text = json.dumps(data, indent=2, ensure_ascii=False)
    elif fmt == "yaml":
        text = yaml.safe_dump(data, allow_unicode=True, default_flow_style=False, sort_keys=False)
    else:
        raise ValueError(f"Unsupported report format: {fmt}")
    path.write_text(text, encoding="utf-8")
    logger.info(f"Report written to {path}")
    return path
