import logging
import sys
from pathlib import Path
from typing import Optional

from compliancefoundry.core.config import settings


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """配置日志：logs/app.log + stdout，级别默认取 CF_LOG_LEVEL"""
    log_path = Path(log_dir or settings.LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path / "app.log", encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )

    # 第三方库只保留告警
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)

    logger = logging.getLogger("compliancefoundry")
    logger.info(f"日志服务已启动 (env={settings.ENV})")
    return logger
