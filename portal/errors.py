"""领域错误定义。

每个错误都带有可机器判断的 ``code`` 与面向用户的 ``message``，
由 API 层统一转换为 JSON 响应。
"""

from typing import List, Optional


class PortalError(Exception):
    """所有业务错误的基类。"""

    code = "PortalError"

    def __init__(self, message: str, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class Unauthenticated(PortalError):
    """凭据缺失、无效或过期，三者对调用方不可区分。"""

    code = "Unauthenticated"

    def __init__(self, message: str = "无法验证凭据") -> None:
        super().__init__(message)


class Forbidden(PortalError):
    code = "Forbidden"


class FieldValidationError(PortalError):
    """字段缺失或格式错误，``details`` 中列出逐字段信息。"""

    code = "ValidationError"

    def __init__(self, details: List[str], message: str = "字段校验失败") -> None:
        super().__init__(message, details)


class NotFound(PortalError):
    code = "NotFound"

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} 不存在")
        self.entity = entity
        self.entity_id = entity_id


class ProjectNotFound(NotFound):
    def __init__(self, project_id: object) -> None:
        super().__init__("项目", project_id)


class Conflict(PortalError):
    code = "Conflict"


class InvalidAuthors(PortalError):
    code = "InvalidAuthors"


class AwardClosed(PortalError):
    code = "AwardClosed"


class ProjectLocked(PortalError):
    code = "ProjectLocked"

    def __init__(self, project_id: int) -> None:
        super().__init__(f"项目 {project_id} 已完成评审，不能再修改")
        self.project_id = project_id


class HasEvaluations(PortalError):
    code = "HasEvaluations"


class HasAssociatedProjects(PortalError):
    code = "HasAssociatedProjects"


# === 评价准入 ===

class InvalidEvaluator(PortalError):
    code = "InvalidEvaluator"


class SelfEvaluation(PortalError):
    code = "SelfEvaluation"


class DuplicateEvaluation(PortalError):
    code = "DuplicateEvaluation"


class InvalidScore(PortalError):
    code = "InvalidScore"


class InvalidOpinion(PortalError):
    code = "InvalidOpinion"


class ProjectAlreadyEvaluated(PortalError):
    code = "ProjectAlreadyEvaluated"
