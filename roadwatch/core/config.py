from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Redis（服务端响应缓存）
    redis_url: str = "redis://localhost:6379/0"  # 置空则关闭响应缓存
    redis_timeout_s: float = 2.0

    # API
    api_prefix: str = "/api/v1"
    debug: bool = False

    # CORS
    cors_origins: list[str] = ["*"]

    # 路线缓存
    route_cache_ttl_s: float = 180.0  # 3分钟
    route_cache_max_entries: int = 50

    # 请求节流与429退避
    min_request_interval_s: float = 1.2
    backoff_tiers_s: list[float] = [2.0, 5.0, 15.0]

    # 导航
    reroute_throttle_s: float = 10.0
    off_route_threshold_m: float = 60.0
    proximity_radius_m: float = 100.0

    # 外部服务超时（秒）
    route_timeout_s: float = 10.0
    flow_timeout_s: float = 5.0
    incident_timeout_s: float = 5.0
    geocode_timeout_s: float = 5.0
    auxiliary_timeout_s: float = 3.0

    # 服务端接口缓存（秒）
    flow_memo_ttl_s: int = 60
    incident_memo_ttl_s: int = 60
    geocode_memo_ttl_s: int = 300

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
