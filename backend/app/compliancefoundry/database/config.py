"""ComplianceFoundry - Database Configuration

数据库连接配置
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from compliancefoundry.core.config import settings

# 创建 Base 类
Base = declarative_base()

DATABASE_URL = settings.DB_URL

# 创建引擎
engine = create_engine(
    DATABASE_URL,
    echo=False,
    # SQLite 特殊配置
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
)

# 创建 Session 工厂
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """创建所有数据表"""
    from compliancefoundry.database import models  # noqa: F401 - 注册模型

    Base.metadata.create_all(bind=engine)


def get_db():
    """获取数据库会话（依赖注入）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
