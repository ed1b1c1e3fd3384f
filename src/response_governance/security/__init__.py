"""Security utilities -- prompt injection defense and boundary input validation."""
from .prompt_guard import sanitize_for_prompt, wrap_user_content
from .validators import (
    ValidationError,
    validate_dict_size,
    validate_identifier,
    validate_length,
    validate_status_code,
)
