"""FastAPI 应用入口"""
import logging
import logging.config
from pathlib import Path

from .config import settings

# 日志配置
# 使用 FileHandler 直接写入文件，避免 uvicorn --reload 子进程 stderr 重定向问题
Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)

logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s:%(name)s:%(message)s"}
    },
    "handlers": {
        "file": {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "filename": settings.LOG_FILE,
            "mode": "a",
            "encoding": "utf-8"
        }
    },
    "root": {
        "level": settings.LOG_LEVEL,
        "handlers": ["file"]
    },
    "loggers": {
        "smartmark": {"level": settings.LOG_LEVEL},
        "httpx": {"level": "INFO"},
    }
})

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .database import init_db
from .api import api_router
from .realtime import ChangeHub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时
    await init_db()
    app.state.change_hub = ChangeHub()
    print(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} 启动成功")
    logger.info(f"{settings.APP_NAME} v{settings.APP_VERSION} started")
    yield
    # 关闭时：结束所有推送订阅，让 WebSocket 连接退出
    print("👋 正在清理资源...")
    app.state.change_hub.close()
    logger.info("change hub closed")
    print("👋 应用关闭完成")


# 创建应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="个人书签 API（OAuth 登录 + 多端实时同步）",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# 变更通知中心（进程内，随应用创建）
app.state.change_hub = ChangeHub()

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(api_router, prefix="/api")


# 健康检查
@app.get("/health", tags=["系统"], summary="健康检查")
async def health_check():
    """检查服务运行状态"""
    return {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION
    }


# 根路由
@app.get("/", tags=["系统"], summary="欢迎页")
async def root():
    """返回 API 基本信息"""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/api/docs"
    }
