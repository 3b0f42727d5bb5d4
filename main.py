"""
入口转发

  - 包名: tag_locator
  - CLI: tag-locator

此文件仅用于兼容 `python main.py run ...` 的运行方式，会转发到 `tag_locator.cli:main`。
"""

import sys

from tag_locator.cli import main as _cli_main


def main():
    return _cli_main()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
