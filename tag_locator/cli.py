from __future__ import annotations

import argparse
import logging
import sys

from .config_manager import ConfigManager
from .detection_store import filter_by_deployment, load_detections, load_tags, write_estimates
from .models import ConfigurationError
from .node_store import NodeStore
from .pipeline import LocalizationPipeline


logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_localization(args) -> int:
    config = ConfigManager(args.config)
    engine_config = config.engine_config()
    paths = config.get_paths()

    nodes_path = args.nodes or paths["nodes"]
    detections_path = args.detections or paths["detections"]
    tags_path = args.tags or paths.get("tags")
    output_path = args.output or paths["output"]

    nodes = NodeStore().load(nodes_path).all()
    logger.info("加载 %d 个节点: %s", len(nodes), nodes_path)

    detections = load_detections(detections_path)
    logger.info("加载 %d 条检测记录: %s", len(detections), detections_path)
    if tags_path:
        tags = load_tags(tags_path)
        detections = filter_by_deployment(detections, tags)
        logger.info("按部署日期筛选后剩余 %d 条 (%d 个标签)", len(detections), len(tags))

    result = LocalizationPipeline(engine_config, nodes).run(detections)
    n = write_estimates(result.estimates, output_path)
    logger.info("写出 %d 条定位结果: %s", n, output_path)
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="tag-locator", description="RSSI trilateration of radio tags")
    parser.add_argument("--config", default=None, help="配置文件路径，默认读取 ./config/config.yaml 或环境变量 TAG_LOCATOR_CONFIG")
    parser.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="对检测记录做三边定位并写出 CSV")
    p_run.add_argument("--detections", default=None, help="检测记录 CSV (TagId, NodeId, Time, TagRSSI)")
    p_run.add_argument("--nodes", default=None, help="节点坐标 CSV (NodeId, UTMx, UTMy)")
    p_run.add_argument("--tags", default=None, help="标签部署表 CSV (TagId, StartDate)，可选")
    p_run.add_argument("--output", default=None, help="定位结果输出 CSV")
    p_run.set_defaults(func=run_localization)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    # 无子命令时默认执行 run，路径全部取自配置文件
    if not hasattr(args, "func"):
        args = p_run.parse_args([], namespace=args)
    try:
        return args.func(args)
    except ConfigurationError as e:
        logger.error("配置错误: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
