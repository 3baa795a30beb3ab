"""
    출력 tag 포맷 - ${event}, ${primary_key} 치환
"""
import logging
import re

logger = logging.getLogger(__name__)

TAG_PLACEHOLDER_PATTERN = re.compile(r"\$\{[^}]*\}")


def format_tag(template: str, event: str, primary_key: str) -> str:
    """알 수 없는 placeholder 는 경고 로그 후 그대로 남김"""
    pattern = {"${event}": str(event), "${primary_key}": primary_key}

    def substitute(match):
        placeholder = match.group(0)
        if placeholder not in pattern:
            logger.warning(f"tag 에 알 수 없는 placeholder: tag={template} placeholder={placeholder}")
            return placeholder
        return pattern[placeholder]

    return TAG_PLACEHOLDER_PATTERN.sub(substitute, template)
