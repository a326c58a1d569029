"""枚举定义 - 用户角色、项目状态、时间窗口用途。"""

import enum


class UserRole(str, enum.Enum):
    """用户角色（封闭集合，所有鉴权分支都需显式处理三种取值）。"""
    AUTHOR = "author"            # 作者：提交项目
    EVALUATOR = "evaluator"      # 评审：为项目打分
    ADMIN = "admin"              # 管理员：创建奖项、代办操作


class ProjectState(str, enum.Enum):
    """项目生命周期状态，由 ``evaluated`` 标志推导。"""
    EDITABLE = "editable"        # 可编辑
    LOCKED = "locked"            # 已完成评审，终态


class WindowPurpose(str, enum.Enum):
    """奖项时间窗口的用途。

    目前阶段标签不参与判断，任意包含当前时间的阶段都视为开放。
    """
    SUBMISSION = "submission"
    EVALUATION = "evaluation"
