"""P&AI Bot: AI completion core for a chat-based maths tutor."""
