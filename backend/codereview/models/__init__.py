from codereview.models.settings_model import LLMProvider, ReviewPreferences

__all__ = [
    "LLMProvider",
    "ReviewPreferences",
]
