"""
path_utils 単体テスト
"""

import tempfile
import unittest
from pathlib import Path

from radidl.utils.path_utils import (
    build_program_filename, ensure_directory_exists, ensure_directory_path_exists, sanitize_filename_part
)


class TestFilename(unittest.TestCase):
    """ファイル名生成"""

    def test_01_禁止文字の置換(self):
        self.assertEqual(sanitize_filename_part('A/B:C*D?"E<F>G|'), "A_B_C_D_E_F_G_")

    def test_02_連続する置換文字と空白をまとめる(self):
        self.assertEqual(sanitize_filename_part("a//b::c"), "a_b_c")
        self.assertEqual(sanitize_filename_part("  My   Show  "), "My Show")

    def test_03_空のタイトルはprogram(self):
        for title in ["", "   ", None]:
            with self.subTest(title=title):
                self.assertEqual(sanitize_filename_part(title), "program")
                self.assertEqual(build_program_filename(title, "20260211230000"), "program - 20260211.aac")

    def test_04_ファイル名の形式(self):
        self.assertEqual(build_program_filename("My Show", "20260211230000"), "My Show - 20260211.aac")
        self.assertEqual(build_program_filename("オールナイト: 特番", "20260219010000"),
                         "オールナイト_ 特番 - 20260219.aac")


class TestDirectories(unittest.TestCase):
    """ディレクトリ作成"""

    def test_01_ディレクトリ作成(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = ensure_directory_path_exists(Path(tmp) / "a" / "b")
            self.assertTrue(target.is_dir())
            # 既存でもエラーにならない
            ensure_directory_path_exists(target)

            file_path = ensure_directory_exists(Path(tmp) / "c" / "d" / "out.aac")
            self.assertTrue(file_path.parent.is_dir())
            self.assertFalse(file_path.exists())


if __name__ == '__main__':
    unittest.main()
