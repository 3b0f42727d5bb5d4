from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Callable, Any

import yaml

from .models import ConfigurationError, DistanceReference


logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except ValueError:
            return v
    return default


DEFAULT_CONFIG_PATH = _env_or_default(
    "TAG_LOCATOR_CONFIG",
    os.path.join(".", "config", "config.yaml"),
)


@dataclass(frozen=True)
class EngineConfig:
    """
    定位引擎的全部参数，一次校验后只读

    a, S, K 为指数衰减模型 RSSI = K + (a - K) * exp(-S * d) 的系数，
    a 为 d=0 处的截距，K 为水平渐近线。
    """

    a: float = -54.4283
    S: float = 5.304308e-03
    K: float = -104.2341
    window_minutes: int = 2
    bucket_width: timedelta = timedelta(minutes=1)
    dist_cap: float = 3000.0
    rss_floor: float = -90.0
    dist_reference: DistanceReference = DistanceReference.ESTIMATE
    max_iterations: int = 200
    tolerance: float = 1e-10
    confidence_level: float = 0.95
    workers: int = 1

    def validate(self) -> "EngineConfig":
        if self.a <= self.K:
            raise ConfigurationError(f"衰减模型不可逆: a={self.a} <= K={self.K}")
        if self.S <= 0:
            raise ConfigurationError(f"衰减系数 S 必须为正: {self.S}")
        if self.window_minutes < 0:
            raise ConfigurationError(f"平滑窗口不能为负: {self.window_minutes}")
        if self.bucket_width <= timedelta(0):
            raise ConfigurationError(f"时间桶宽度必须为正: {self.bucket_width}")
        if self.dist_cap <= 0:
            raise ConfigurationError(f"距离上限必须为正: {self.dist_cap}")
        if not 0.0 < self.confidence_level < 1.0:
            raise ConfigurationError(f"置信水平须在 (0, 1) 内: {self.confidence_level}")
        if self.max_iterations <= 0 or self.tolerance <= 0:
            raise ConfigurationError("迭代上限与收敛容差必须为正")
        if self.workers < 1:
            raise ConfigurationError(f"并行数至少为 1: {self.workers}")
        return self

    def with_overrides(self, **changes: Any) -> "EngineConfig":
        return replace(self, **changes).validate()


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or DEFAULT_CONFIG_PATH
        self.default_config = {
            "decay_model": {
                "a": _env_or_default("TAG_LOCATOR_MODEL_A", -54.4283, float),
                "S": _env_or_default("TAG_LOCATOR_MODEL_S", 5.304308e-03, float),
                "K": _env_or_default("TAG_LOCATOR_MODEL_K", -104.2341, float),
            },
            "signal": {
                "window_minutes": _env_or_default("TAG_LOCATOR_WINDOW_MINUTES", 2, int),
                "bucket_minutes": _env_or_default("TAG_LOCATOR_BUCKET_MINUTES", 1.0, float),
            },
            "filter": {
                "dist_cap": _env_or_default("TAG_LOCATOR_DIST_CAP", 3000.0, float),
                "rss_floor": _env_or_default("TAG_LOCATOR_RSS_FLOOR", -90.0, float),
                "dist_reference": _env_or_default("TAG_LOCATOR_DIST_REFERENCE", "estimate"),
            },
            "solver": {
                "max_iterations": _env_or_default("TAG_LOCATOR_MAX_ITERATIONS", 200, int),
                "tolerance": _env_or_default("TAG_LOCATOR_TOLERANCE", 1e-10, float),
                "confidence_level": _env_or_default("TAG_LOCATOR_CONFIDENCE", 0.95, float),
                "workers": _env_or_default("TAG_LOCATOR_WORKERS", 1, int),
            },
            "paths": {
                "detections": _env_or_default(
                    "TAG_LOCATOR_PATH_DETECTIONS", os.path.join(".", "data", "beeps.csv")
                ),
                "nodes": _env_or_default(
                    "TAG_LOCATOR_PATH_NODES", os.path.join(".", "data", "nodes.csv")
                ),
                "tags": _env_or_default("TAG_LOCATOR_PATH_TAGS", None),
                "output": _env_or_default(
                    "TAG_LOCATOR_PATH_OUTPUT", os.path.join(".", "output", "estimated_locations.csv")
                ),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self.config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"配置文件解析失败 {self.config_file}: {e}") from e
            if not isinstance(self.config, dict):
                raise ConfigurationError(f"配置文件顶层必须是映射: {self.config_file}")
            self._merge_default_config()
        else:
            logger.info("配置文件不存在，写入默认配置: %s", self.config_file)
            self.config = _deep_copy(self.default_config)
            self.save_config()

    def _merge_default_config(self) -> None:
        def merge_dict(default, current):
            for key, value in default.items():
                if key not in current:
                    current[key] = _deep_copy(value)
                elif isinstance(value, dict) and isinstance(current[key], dict):
                    merge_dict(value, current[key])

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except OSError as e:
            # 只读目录下仍可使用内存中的配置
            logger.warning("保存配置失败 %s: %s", self.config_file, e)

    # ---------- Accessors ----------
    def get_decay_model_config(self):
        return self.config["decay_model"]

    def get_signal_config(self):
        return self.config["signal"]

    def get_filter_config(self):
        return self.config["filter"]

    def get_solver_config(self):
        return self.config["solver"]

    def get_paths(self):
        return self.config.get("paths", {})

    def set_decay_model_config(self, a: float, S: float, K: float):
        self.config["decay_model"]["a"] = a
        self.config["decay_model"]["S"] = S
        self.config["decay_model"]["K"] = K
        self.save_config()

    def engine_config(self) -> EngineConfig:
        """把 YAML 中的数值转换为校验过的 EngineConfig"""
        model = self.get_decay_model_config()
        signal = self.get_signal_config()
        flt = self.get_filter_config()
        solver = self.get_solver_config()
        try:
            reference = DistanceReference(str(flt["dist_reference"]).lower())
        except ValueError as e:
            raise ConfigurationError(f"未知的距离基准: {flt['dist_reference']!r}") from e
        try:
            cfg = EngineConfig(
                a=float(model["a"]),
                S=float(model["S"]),
                K=float(model["K"]),
                window_minutes=int(signal["window_minutes"]),
                bucket_width=timedelta(minutes=float(signal["bucket_minutes"])),
                dist_cap=float(flt["dist_cap"]),
                rss_floor=float(flt["rss_floor"]),
                dist_reference=reference,
                max_iterations=int(solver["max_iterations"]),
                tolerance=float(solver["tolerance"]),
                confidence_level=float(solver["confidence_level"]),
                workers=int(solver["workers"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"配置项缺失或类型错误: {e}") from e
        return cfg.validate()


def _deep_copy(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _deep_copy(v) for k, v in value.items()}
    return value
