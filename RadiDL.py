#!/usr/bin/env python3
"""
RadiDL - Radikoタイムフリー番組ダウンローダー

使用例:
    # config.json の links を順にダウンロード
    python RadiDL.py

    # 設定ファイルを指定
    python RadiDL.py --config custom_config.json

    # 番組URLを直接指定
    python RadiDL.py "https://radiko.jp/#!/ts/TBS/20260219010000"
"""

import sys

from radidl.cli import main


if __name__ == "__main__":
    sys.exit(main())
