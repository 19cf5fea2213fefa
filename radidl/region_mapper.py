"""
地域IDマッピングモジュール

このモジュールは47都道府県の地域ID（JP1〜JP47）に関する情報を提供します。
- 地域ID ⇔ 都道府県名（日本語・英語）の変換
- 各地域の基準座標と、認証用の擬似GPS位置生成
"""

import random
from dataclasses import dataclass
from typing import Dict, List, Optional

# GPS位置のゆらぎ幅（度）
GPS_JITTER = 1 / 40.0


@dataclass(frozen=True)
class RegionInfo:
    """地域情報"""
    area_id: str           # 地域ID（JP13等）
    prefecture_ja: str     # 都道府県名（日本語）
    prefecture_en: str     # 都道府県名（英語）
    latitude: float        # 県庁所在地の緯度
    longitude: float       # 県庁所在地の経度


class RegionMapper:
    """地域IDマッピングクラス"""

    # JP1〜JP47の順序を保持する
    REGIONS: List[RegionInfo] = [
        RegionInfo("JP1", "北海道", "Hokkaido", 43.064615, 141.346807),
        RegionInfo("JP2", "青森県", "Aomori", 40.824308, 140.739998),
        RegionInfo("JP3", "岩手県", "Iwate", 39.703619, 141.152684),
        RegionInfo("JP4", "宮城県", "Miyagi", 38.268837, 140.8721),
        RegionInfo("JP5", "秋田県", "Akita", 39.718614, 140.102364),
        RegionInfo("JP6", "山形県", "Yamagata", 38.240436, 140.363633),
        RegionInfo("JP7", "福島県", "Fukushima", 37.750299, 140.467551),
        RegionInfo("JP8", "茨城県", "Ibaraki", 36.341811, 140.446793),
        RegionInfo("JP9", "栃木県", "Tochigi", 36.565725, 139.883565),
        RegionInfo("JP10", "群馬県", "Gunma", 36.390668, 139.060406),
        RegionInfo("JP11", "埼玉県", "Saitama", 35.856999, 139.648849),
        RegionInfo("JP12", "千葉県", "Chiba", 35.605057, 140.123306),
        RegionInfo("JP13", "東京都", "Tokyo", 35.689488, 139.691706),
        RegionInfo("JP14", "神奈川県", "Kanagawa", 35.447507, 139.642345),
        RegionInfo("JP15", "新潟県", "Niigata", 37.902552, 139.023095),
        RegionInfo("JP16", "富山県", "Toyama", 36.695291, 137.211338),
        RegionInfo("JP17", "石川県", "Ishikawa", 36.594682, 136.625573),
        RegionInfo("JP18", "福井県", "Fukui", 36.065178, 136.221527),
        RegionInfo("JP19", "山梨県", "Yamanashi", 35.664158, 138.568449),
        RegionInfo("JP20", "長野県", "Nagano", 36.651299, 138.180956),
        RegionInfo("JP21", "岐阜県", "Gifu", 35.391227, 136.722291),
        RegionInfo("JP22", "静岡県", "Shizuoka", 34.97712, 138.383084),
        RegionInfo("JP23", "愛知県", "Aichi", 35.180188, 136.906565),
        RegionInfo("JP24", "三重県", "Mie", 34.730283, 136.508588),
        RegionInfo("JP25", "滋賀県", "Shiga", 35.004531, 135.86859),
        RegionInfo("JP26", "京都府", "Kyoto", 35.021247, 135.755597),
        RegionInfo("JP27", "大阪府", "Osaka", 34.686297, 135.519661),
        RegionInfo("JP28", "兵庫県", "Hyogo", 34.691269, 135.183071),
        RegionInfo("JP29", "奈良県", "Nara", 34.685334, 135.832742),
        RegionInfo("JP30", "和歌山県", "Wakayama", 34.225987, 135.167509),
        RegionInfo("JP31", "鳥取県", "Tottori", 35.503891, 134.237736),
        RegionInfo("JP32", "島根県", "Shimane", 35.472295, 133.0505),
        RegionInfo("JP33", "岡山県", "Okayama", 34.661751, 133.934406),
        RegionInfo("JP34", "広島県", "Hiroshima", 34.39656, 132.459622),
        RegionInfo("JP35", "山口県", "Yamaguchi", 34.185956, 131.470649),
        RegionInfo("JP36", "徳島県", "Tokushima", 34.065718, 134.55936),
        RegionInfo("JP37", "香川県", "Kagawa", 34.340149, 134.043444),
        RegionInfo("JP38", "愛媛県", "Ehime", 33.841624, 132.765681),
        RegionInfo("JP39", "高知県", "Kochi", 33.559706, 133.531079),
        RegionInfo("JP40", "福岡県", "Fukuoka", 33.606576, 130.418297),
        RegionInfo("JP41", "佐賀県", "Saga", 33.249442, 130.299794),
        RegionInfo("JP42", "長崎県", "Nagasaki", 32.744839, 129.873756),
        RegionInfo("JP43", "熊本県", "Kumamoto", 32.789827, 130.741667),
        RegionInfo("JP44", "大分県", "Oita", 33.238172, 131.612619),
        RegionInfo("JP45", "宮崎県", "Miyazaki", 31.911096, 131.423893),
        RegionInfo("JP46", "鹿児島県", "Kagoshima", 31.560146, 130.557978),
        RegionInfo("JP47", "沖縄県", "Okinawa", 26.2124, 127.680932),
    ]

    REGION_INFO: Dict[str, RegionInfo] = {info.area_id: info for info in REGIONS}

    @classmethod
    def _name_index(cls) -> Dict[str, str]:
        """都道府県名（接尾辞あり・なし、英語小文字）→ 地域ID"""
        index: Dict[str, str] = {}
        for info in cls.REGIONS:
            index[info.prefecture_ja] = info.area_id
            if info.prefecture_ja != "北海道":
                index[info.prefecture_ja[:-1]] = info.area_id
            index[info.prefecture_en.lower()] = info.area_id
        return index

    @classmethod
    def get_area_id(cls, prefecture_name: str) -> Optional[str]:
        """都道府県名から地域IDを取得

        "東京", "東京都", "Tokyo", "tokyo" のいずれにも対応する。
        """
        if not prefecture_name or not prefecture_name.strip():
            return None

        name = prefecture_name.strip()
        index = cls._name_index()
        return index.get(name) or index.get(name.lower())

    @classmethod
    def get_prefecture_name(cls, area_id: str) -> Optional[str]:
        """地域IDから都道府県名（日本語）を取得"""
        region_info = cls.REGION_INFO.get(area_id)
        return region_info.prefecture_ja if region_info else None

    @classmethod
    def get_region_info(cls, area_id: str) -> Optional[RegionInfo]:
        """地域IDから詳細情報を取得"""
        return cls.REGION_INFO.get(area_id)

    @classmethod
    def list_area_ids(cls) -> List[str]:
        """全地域IDをJP1〜JP47の順で取得"""
        return [info.area_id for info in cls.REGIONS]

    @classmethod
    def validate_area_id(cls, area_id: str) -> bool:
        """地域IDの妥当性を確認"""
        return area_id in cls.REGION_INFO

    @classmethod
    def generate_gps(cls, area_id: str, rng: Optional[random.Random] = None) -> str:
        """地域の基準座標にゆらぎを加えたGPS位置を生成

        緯度・経度それぞれに [-1/40, 1/40) の一様乱数を独立に加える。
        認証2段階目の X-Radiko-Location ヘッダーに使用する。

        Returns:
            "緯度,経度,gps" 形式（小数点以下6桁）

        Raises:
            ValueError: 不明な地域ID
        """
        info = cls.get_region_info(area_id)
        if info is None:
            raise ValueError(f"不正な地域IDです: {area_id}")

        rng = rng or random
        latitude = info.latitude + (rng.random() * 2 - 1) * GPS_JITTER
        longitude = info.longitude + (rng.random() * 2 - 1) * GPS_JITTER
        return f"{latitude:.6f},{longitude:.6f},gps"
