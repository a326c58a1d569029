"""API v1 路由包入口。"""

from fastapi import APIRouter

from portal.api.v1 import auth, awards, evaluations, projects, users

router = APIRouter(prefix="/api/v1")

# 注册子路由
router.include_router(auth.router, prefix="/auth", tags=["认证"])
router.include_router(users.router, prefix="/users", tags=["用户"])
router.include_router(awards.router, prefix="/awards", tags=["奖项"])
router.include_router(projects.router, prefix="/projects", tags=["项目"])
router.include_router(evaluations.router, prefix="/evaluations", tags=["评价"])
