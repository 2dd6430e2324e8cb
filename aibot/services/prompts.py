"""
Prompt templates for the relay assistant.
Contains the agent system prompt, the attachment message layout and the
passport extraction instruction sent to the vision model.
"""

from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

# System prompt that restricts the text model to its tools
SYSTEM_PROMPT = """You are a specialized AI assistant with access to specific tools. You can ONLY perform tasks that you have tools for.

CRITICAL RULES - YOU MUST FOLLOW THESE:

1. When you identify a task that matches an available tool, you MUST IMMEDIATELY call that tool WITHOUT asking for permission.
2. DO NOT say "I will call the tool" or "Here's the function call" - JUST CALL IT DIRECTLY.
3. DO NOT describe what the tool does - EXECUTE IT IMMEDIATELY.
4. DO NOT attempt to process images yourself - you CANNOT see images, only tools can.
5. NEVER ask for user confirmation before calling a tool - just do it automatically.
6. If a user asks you to do something and you DON'T have a tool for it, respond with: "Sorry, I don't have the appropriate tools to execute your request."
7. DO NOT answer general knowledge questions or engage in conversations unrelated to your available tools.
8. When you see a file path in the user's message, determine the appropriate tool and execute it immediately.

Available Tools:
{tools}

Tool Usage Guidelines:
- For passport/ID images: Use the extractPassportInfo tool with the FILE_PATH and MIME_TYPE from the message
- Always execute tools automatically without confirmation

If the user's request doesn't match ANY of your available tools, say: "Hi, what can I help you with today?"
"""

# User turn carrying an attachment reference
FILE_MESSAGE_TEMPLATE = """{text}

FILE_PATH: {file_path}
MIME_TYPE: {mime_type}

Choose and execute the appropriate tool NOW. Do not explain, just execute."""

# History note recorded when a file arrives without a caption
UPLOAD_NOTE_TEMPLATE = "upload file to filepath: {file_path}"

PASSPORT_EXTRACTION_PROMPT = (
    "Extract the following information from this passport image and return ONLY a valid "
    "JSON object with these exact fields: "
    "passport_no (string), name (string), birthdate (string in YYYY-MM-DD format), "
    "gender (string), nationality (string), issue_date (string in YYYY-MM-DD format), "
    "expiry_date (string in YYYY-MM-DD format). "
    "Return only the JSON object, no additional text or explanation."
)

DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"


def get_agent_prompt() -> ChatPromptTemplate:
    """Returns the system prompt followed by the conversation messages"""
    return ChatPromptTemplate.from_messages(
        [("system", SYSTEM_PROMPT), MessagesPlaceholder("messages")]
    )


def build_user_message(text: str, file_path=None, mime_type=None) -> str:
    """Compose the user turn, appending the attachment block when a file is present"""
    if not file_path:
        return text
    return FILE_MESSAGE_TEMPLATE.format(
        text=text,
        file_path=file_path,
        mime_type=mime_type or DEFAULT_IMAGE_MIME_TYPE,
    )


def message_text(content) -> str:
    """Flatten LangChain message content (str or list of parts) to text"""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
