from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# Default Grounded-SAM Gradio endpoint. VISION_MCP_ENDPOINT beats the config file, which beats this.
_DEFAULT_ENDPOINT = "http://localhost:7589"
ENDPOINT_ENV = "VISION_MCP_ENDPOINT"

CONFIG_PATH = Path(
    os.environ.get("VISION_MCP_CONFIG", str(Path.home() / ".config" / "visionmcp" / "config.yml"))
)


@dataclass(frozen=True)
class AppConfig:
    endpoint_url: str = _DEFAULT_ENDPOINT
    output_root: str = "output"        # results land in <output_root>/<det|segmentation|inpainting>
    request_timeout: float = 120.0     # seconds, per HTTP request (image fetch, predict, download)
    fn_index: int = 0                  # predict function index in the Gradio app
    predict_path: str = "/api/predict/"
    log_level: str = "INFO"
    config_version: int = 1


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith(("http://", "https://"))


def _validate(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults = AppConfig().__dict__.copy()
    merged = {**defaults, **{k: v for k, v in cfg.items() if k in defaults}}
    if not _is_http_url(merged.get("endpoint_url")):
        merged["endpoint_url"] = defaults["endpoint_url"]
    if not isinstance(merged["output_root"], str) or not merged["output_root"].strip():
        merged["output_root"] = defaults["output_root"]
    raw_to = merged.get("request_timeout")
    merged["request_timeout"] = (
        float(raw_to) if isinstance(raw_to, (int, float)) and not isinstance(raw_to, bool) and raw_to > 0
        else defaults["request_timeout"]
    )
    raw_fn = merged.get("fn_index")
    merged["fn_index"] = int(raw_fn) if isinstance(raw_fn, int) and not isinstance(raw_fn, bool) and raw_fn >= 0 else defaults["fn_index"]
    if not isinstance(merged["predict_path"], str) or not merged["predict_path"].strip():
        merged["predict_path"] = defaults["predict_path"]
    level = str(merged.get("log_level", "")).upper()
    merged["log_level"] = level if isinstance(logging.getLevelName(level), int) else defaults["log_level"]
    merged["config_version"] = defaults["config_version"]
    return merged


def load_config(path: Path = CONFIG_PATH) -> dict[str, Any]:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists():
        cfg = _validate({})
        save_config(cfg, path)
        return cfg

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    cfg = _validate(raw if isinstance(raw, dict) else {})
    if cfg != raw:
        save_config(cfg, path)
    return cfg


def save_config(cfg: dict[str, Any], path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    validated = _validate(cfg)
    tmp_path = path.with_suffix(".tmp")
    tmp_path.write_text(yaml.safe_dump(validated, sort_keys=True), encoding="utf-8")
    tmp_path.replace(path)


def app_config(path: Path = CONFIG_PATH) -> AppConfig:
    cfg = load_config(path)
    env_endpoint = os.environ.get(ENDPOINT_ENV, "")
    if _is_http_url(env_endpoint):
        cfg["endpoint_url"] = env_endpoint.strip()
    return AppConfig(**cfg)
