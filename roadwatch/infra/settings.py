"""外部路径服务配置加载。
- 优先读取本地配置文件 config/private.yaml（密钥与端点），无则读取环境变量。
- 密钥允许为空，真正调用对应服务时才报缺失。
"""
from __future__ import annotations

import os  # 导入标准库 os 用于读取环境变量
from dataclasses import dataclass  # 使用 dataclass 保证字段强类型
from functools import lru_cache  # 进程内只加载一次
from pathlib import Path  # 用于定位配置文件

import yaml  # 解析 YAML 配置


@dataclass(frozen=True)
class ProviderSettings:
    """运行时配置，覆盖路径规划、交通流量与地理编码服务。"""
    ors_api_key: str  # OpenRouteService 密钥
    ors_base_url: str  # OpenRouteService 地址
    ors_profile: str  # 出行方式，如 driving-car
    tomtom_api_key: str  # TomTom 密钥
    tomtom_base_url: str  # TomTom 地址
    nominatim_base_url: str  # Nominatim 地址
    nominatim_user_agent: str  # Nominatim 要求的 User-Agent
    language: str  # 导航指令语言
    geocode_country_codes: str  # 地理编码国家过滤，逗号分隔


def _load_private_config() -> dict[str, str]:
    """优先读取本地私有配置文件 config/private.yaml。"""
    cfg_path = Path(__file__).resolve().parents[2] / "config" / "private.yaml"  # 配置路径
    if not cfg_path.exists():  # 若不存在，返回空
        return {}
    with cfg_path.open("r", encoding="utf-8") as f:  # 打开文件
        data = yaml.safe_load(f) or {}  # 解析 YAML
        if not isinstance(data, dict):  # 校验类型
            raise RuntimeError("config/private.yaml 内容必须是对象")  # 抛错
        return {str(k): str(v) for k, v in data.items()}  # 转为字符串字典


def load_settings() -> ProviderSettings:
    """加载外部服务配置。"""
    priv = _load_private_config()  # 读取本地私有配置

    def pick(name: str, default: str = "") -> str:
        """优先使用私有配置，其次环境变量，最后默认值。"""
        if name in priv and str(priv[name]).strip():  # 私有配置存在且非空
            return str(priv[name]).strip()
        return (os.getenv(name, default) or default).strip()

    return ProviderSettings(
        ors_api_key=pick("ORS_API_KEY"),
        ors_base_url=pick("ORS_BASE_URL", "https://api.openrouteservice.org").rstrip("/"),
        ors_profile=pick("ORS_PROFILE", "driving-car"),
        tomtom_api_key=pick("TOMTOM_API_KEY"),
        tomtom_base_url=pick("TOMTOM_BASE_URL", "https://api.tomtom.com").rstrip("/"),
        nominatim_base_url=pick("NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org").rstrip("/"),
        nominatim_user_agent=pick("NOMINATIM_USER_AGENT", "roadwatch/1.0"),
        language=pick("ROUTE_LANGUAGE", "nl-NL"),
        geocode_country_codes=pick("GEOCODE_COUNTRY_CODES", "nl"),
    )


@lru_cache()
def get_provider_settings() -> ProviderSettings:
    return load_settings()
