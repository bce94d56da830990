from kb_api.assistant.client import OpenAIChatClient, parse_reply
from kb_api.assistant.prompts import AssistantAction, build_prompts

__all__ = ["AssistantAction", "OpenAIChatClient", "build_prompts", "parse_reply"]
