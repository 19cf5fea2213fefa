"""
RadiDL テストパッケージ

- test_datetime_utils.py / test_network_utils.py / test_path_utils.py: ユーティリティ
- test_detail_reference.py / test_detail_resolver.py: 番組参照の解析・解決
- test_auth.py / test_area_resolver.py / test_program_info.py / test_playlist.py: 各段階
- test_audio.py: セグメント取得・結合
- test_downloader.py: パイプライン全体とバッチ処理
- test_config_manager.py / test_cli.py / test_error_handler.py: 周辺機能
"""

import sys
from pathlib import Path

# プロジェクトルートをパスに追加
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
