"""文本字段清洗与必填校验工具。"""

from typing import Any, Dict, List, Optional


def clean_text(value: Any) -> Optional[str]:
    """去除首尾空白，空串返回 None。"""

    if value is None:
        return None
    text = str(value).strip()
    return text or None


def missing_fields(values: Dict[str, Any]) -> List[str]:
    """返回为空的字段提示列表，例如 ``["title: 不能为空"]``。"""

    return [f"{name}: 不能为空" for name, value in values.items() if clean_text(value) is None]
