"""HTML page used to rasterize chat transcripts."""

from __future__ import annotations

from html import escape
from string import Template

from domain.chat_project import (
    ChatConfig,
    ScreenshotKey,
    find_participant,
    is_local_sender,
)

CHAT_CONTAINER_ID = "chatContainer"

PAGE_TEMPLATE = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Chat Screenshot</title>
  <style>
    * {
      margin: 0;
      padding: 0;
      box-sizing: border-box;
    }
    body {
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
      background: transparent;
      padding: 20px;
      display: flex;
      justify-content: center;
      align-items: flex-start;
      min-height: 100vh;
    }
    .chat-container {
      background: rgba(255, 255, 255, 0.95);
      border-radius: 20px;
      padding: 20px;
      box-shadow: 0 4px 20px rgba(0, 0, 0, 0.15);
      max-width: 920px;
      width: 100%;
      min-height: 200px;
    }
    .message {
      margin-bottom: 12px;
      display: flex;
      flex-direction: column;
    }
    .message.left {
      align-items: flex-start;
    }
    .message.right {
      align-items: flex-end;
    }
    .message-bubble {
      max-width: 75%;
      padding: 12px 16px;
      border-radius: 18px;
      word-wrap: break-word;
      line-height: 1.4;
      font-size: 16px;
    }
    .message.left .message-bubble {
      background: #e5e5ea;
      color: #000;
      border-bottom-left-radius: 4px;
    }
    .message.right .message-bubble {
      background: #007aff;
      color: #fff;
      border-bottom-right-radius: 4px;
    }
    .message-sender {
      font-size: 12px;
      color: #666;
      margin-bottom: 4px;
      padding: 0 4px;
      text-align: left;
    }
  </style>
</head>
<body>
  <div class="chat-container" id="$container_id" data-theme="$theme">
$messages
  </div>
</body>
</html>
"""
)


def build_message_html(chat: ChatConfig, message_index: int) -> str:
    """Render one message block with bubble alignment and sender label."""
    message = chat.messages[message_index]
    is_right = is_local_sender(message.sender)
    side = "right" if is_right else "left"
    parts = [f'    <div class="message {side}">']
    participant = find_participant(message.sender, chat.participants)
    if participant is not None and not is_right:
        parts.append(
            f'      <div class="message-sender">{escape(participant.name)}</div>'
        )
    parts.append(f'      <div class="message-bubble">{escape(message.text)}</div>')
    parts.append("    </div>")
    return "\n".join(parts)


def build_chat_html(chat: ChatConfig, key: ScreenshotKey) -> str:
    """Render the chat page for messages ``key.start`` through ``key.end``."""
    messages_html = "\n".join(
        build_message_html(chat, index) for index in range(key.start, key.end + 1)
    )
    return PAGE_TEMPLATE.substitute(
        container_id=CHAT_CONTAINER_ID,
        theme=escape(chat.theme),
        messages=messages_html,
    )
