"""
CSV 读写：原始检测记录、标签部署表与定位结果。

定位核心只处理内存中的对象，文件格式只在这里出现。
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, List

import pandas as pd

from .models import ConfigurationError, Detection, LocationEstimate, Tag, check_identifier


logger = logging.getLogger(__name__)

ESTIMATE_COLUMNS = [
    "TagId",
    "Time.group",
    "Hour",
    "No.Nodes",
    "UTMx_est",
    "UTMy_est",
    "x.LCI",
    "x.UCI",
    "y.LCI",
    "y.UCI",
]


def _require_file(path: str, what: str) -> None:
    if not os.path.exists(path):
        raise ConfigurationError(f"{what}文件不存在: {path}")


def load_detections(csv_path: str, time_column: str = "Time") -> List[Detection]:
    """读取检测记录，缺字段的行丢弃并记日志"""
    _require_file(csv_path, "检测记录")
    df = pd.read_csv(csv_path, dtype={"TagId": str, "NodeId": str})
    columns = ["TagId", "NodeId", time_column, "TagRSSI"]
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ConfigurationError(f"检测记录缺少列: {missing}")

    df = df[columns].copy()
    df[time_column] = pd.to_datetime(df[time_column], errors="coerce")
    df["TagRSSI"] = pd.to_numeric(df["TagRSSI"], errors="coerce")
    before = len(df)
    df = df.dropna()
    if len(df) < before:
        logger.warning("丢弃 %d 条不完整的检测记录", before - len(df))

    return [
        Detection(
            tag_id=check_identifier(str(tag).strip(), "标签"),
            node_id=check_identifier(str(node).strip(), "节点"),
            timestamp=pd.Timestamp(ts).to_pydatetime(),
            rssi=float(rssi),
        )
        for tag, node, ts, rssi in df.itertuples(index=False, name=None)
    ]


def load_tags(csv_path: str) -> Dict[str, Tag]:
    _require_file(csv_path, "标签")
    df = pd.read_csv(csv_path, dtype={"TagId": str})
    if "TagId" not in df.columns or "StartDate" not in df.columns:
        raise ConfigurationError("标签文件需要 TagId, StartDate 两列")
    dates = pd.to_datetime(df["StartDate"], errors="coerce")
    if dates.isna().any():
        raise ConfigurationError(f"无法解析的部署日期: {list(df.loc[dates.isna(), 'StartDate'])}")
    tags: Dict[str, Tag] = {}
    for tag_id, start in zip(df["TagId"], dates):
        tag_id = check_identifier(str(tag_id).strip(), "标签")
        tags[tag_id] = Tag(tag_id=tag_id, start_date=start.date())
    return tags


def filter_by_deployment(detections: Iterable[Detection], tags: Dict[str, Tag]) -> List[Detection]:
    """只保留列表中的标签在部署日（含）之后的检测"""
    kept: List[Detection] = []
    for d in detections:
        tag = tags.get(d.tag_id)
        if tag is not None and d.timestamp.date() >= tag.start_date:
            kept.append(d)
    return kept


def estimates_frame(estimates: Iterable[LocationEstimate]) -> pd.DataFrame:
    return pd.DataFrame([e.to_record() for e in estimates], columns=ESTIMATE_COLUMNS)


def write_estimates(estimates: Iterable[LocationEstimate], csv_path: str) -> int:
    df = estimates_frame(estimates)
    os.makedirs(os.path.dirname(csv_path) or ".", exist_ok=True)
    df.to_csv(csv_path, index=False, encoding="utf-8")
    return len(df)
