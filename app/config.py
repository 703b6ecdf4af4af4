import os

from dotenv import load_dotenv

load_dotenv()

# Supabase
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# AI providers
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_EMBEDDING_MODEL = os.getenv("GEMINI_EMBEDDING_MODEL", "models/text-embedding-004")

TTS_API_KEY = os.getenv("TTS_API_KEY") or os.getenv("OPENAI_API_KEY")
TTS_API_BASE = os.getenv("TTS_API_BASE", "https://api.openai.com/v1")
TTS_MODEL = os.getenv("TTS_MODEL", "tts-1")
TTS_VOICE = os.getenv("TTS_VOICE", "alloy")

DID_API_KEY = os.getenv("DID_API_KEY")
DID_API_BASE = os.getenv("DID_API_BASE", "https://api.d-id.com")
DID_SOURCE_URL = os.getenv("DID_SOURCE_URL", "https://i.ibb.co/wrjD9fm/IMG-2541.jpg")
DID_VOICE_ID = os.getenv("DID_VOICE_ID", "en-US-GuyNeural")

# Client
AI_API_BASE_URL = os.getenv("AI_API_BASE_URL", "http://localhost:8000/api")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@tensionapp.dev")

# Limits and timings
MAX_CHAT_FILE_SIZE = 25 * 1024 * 1024

PRESENCE_POLL_INTERVAL = 1.0  # seconds
IDLE_AFTER_SECONDS = 5.0
PRESENCE_WINDOW_HOURS = 24

NOTIFICATION_LIFETIME = 3.0  # seconds

VIDEO_POLL_MAX_ATTEMPTS = 180
VIDEO_POLL_INTERVAL = 1.0  # seconds
# Client wait for /generate-video: every poll plus a slow GET each, and the create call
VIDEO_CLIENT_TIMEOUT = VIDEO_POLL_MAX_ATTEMPTS * (VIDEO_POLL_INTERVAL + 1.0) + 60.0

CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200

DEFAULT_CHANNEL_NAME = "general"
DEFAULT_CHANNEL_DESCRIPTION = "General discussion"

# Prompts

ASSISTANT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant in a chat application. You help users by "
    "providing information based on the chat history and answering their questions."
)

CHANNEL_PROMPT = """Based on the following chat context:

{context}

Question: {query}

Please provide a helpful response that accurately reflects the conversation history. If the context doesn't contain relevant information, acknowledge that and provide a general response."""

DEFAULT_BOT_PROMPT = (
    "You are answering direct messages on behalf of a teammate who is away. "
    "Reply briefly, in the first person, in the way they usually write."
)

DM_PROMPT = """Here are messages previously written by the person you are speaking for:

{context}

Reply to this direct message as they would: {query}"""

NO_RESPONSE_FALLBACK = "I couldn't generate a response."
