from __future__ import annotations

import os
from typing import Dict, Optional, cast

import pandas as pd

from .models import ConfigurationError, Node, check_identifier


class NodeStore:
    """管理接收节点坐标（pandas + CSV），加载后只读"""

    def __init__(self):
        # 使用 DataFrame 管理，索引为 node_id
        self._df = pd.DataFrame(columns=["x", "y"])
        self._df.index.name = "node_id"

    # ---- Utils ----
    @staticmethod
    def _normalize_df(df: pd.DataFrame) -> pd.DataFrame:
        if df.shape[1] < 3:
            raise ConfigurationError("节点文件至少需要 NodeId, UTMx, UTMy 三列")
        # 前三列依次为 NodeId, UTMx, UTMy，其余列仅供参考
        df = df.iloc[:, :3].copy()
        df.columns = ["node_id", "x", "y"]
        if df["node_id"].isna().any():
            raise ConfigurationError("节点文件存在空的 NodeId")
        df["node_id"] = df["node_id"].astype(str).str.strip()
        for col in ["x", "y"]:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        bad = df[df[["x", "y"]].isna().any(axis=1)]
        if not bad.empty:
            raise ConfigurationError(f"节点坐标缺失或非数值: {list(bad['node_id'])}")
        for node_id in df["node_id"]:
            check_identifier(node_id, "节点")
        df = df.drop_duplicates(subset=["node_id"], keep="last").set_index("node_id")
        df = df.astype({"x": "float64", "y": "float64"})
        return df.sort_index()

    # ---- Load ----
    def load(self, csv_path: str) -> "NodeStore":
        if not os.path.exists(csv_path):
            raise ConfigurationError(f"节点文件不存在: {csv_path}")
        df = pd.read_csv(csv_path, dtype=str)
        self._df = self._normalize_df(df)
        return self

    # ---- Accessors ----
    def __len__(self) -> int:
        return len(self._df)

    def get(self, node_id: str) -> Optional[Node]:
        if node_id not in self._df.index:
            return None
        row = cast(pd.Series, self._df.loc[node_id])
        return Node(node_id=str(node_id), x=float(row.at["x"]), y=float(row.at["y"]))

    def all(self) -> Dict[str, Node]:
        result: Dict[str, Node] = {}
        for node_key, row in self._df.iterrows():
            row_s = cast(pd.Series, row)
            node_id = str(node_key)
            result[node_id] = Node(node_id=node_id, x=float(row_s.at["x"]), y=float(row_s.at["y"]))
        return result
