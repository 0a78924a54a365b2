DEFAULT_BOT_NAME = "Gate"
DEFAULT_COMMAND_PREFIX = "!"

# budget / memory
DEFAULT_TOKEN_LIMIT = 500
DEFAULT_MEMORY_LIMIT = 10
DEFAULT_MEMORY_ENABLED = True

# transport
DISCORD_MAX_MESSAGE_LEN = 2000
MIN_AMBIENT_PROMPT_CHARS = 3

# completion
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 300
DEFAULT_TEMPERATURE = 0.75

# timeouts (seconds)
DEFAULT_STORE_TIMEOUT_SECONDS = 15
DEFAULT_COMPLETION_TIMEOUT_SECONDS = 30

# idle conversation sweep
DEFAULT_MEMORY_SWEEP_INTERVAL_SECONDS = 3600
DEFAULT_MEMORY_MAX_IDLE_HOURS = 0

DEFAULT_USAGE_TIMEZONE = "UTC"

# user-facing notices
BUDGET_EXCEEDED_NOTICE = "Daily AI interaction limit ({limit} tokens) reached. Try tomorrow!"
SILENCED_NOTICE = "Shhh, I'm in silent mode. Admins can wake me up if needed!"
MAINTENANCE_NOTICE = ""
DM_RESTRICTED_NOTICE = "Sorry, DMs are restricted currently."
COMPLETION_ERROR_NOTICE = "Oops! My circuits are a bit tangled. Try rephrasing or ask again later?"
RATE_LIMITED_NOTICE = "I'm getting a lot of questions right now. Try again shortly!"
FALLBACK_REPLIES = ("Hmm, not sure about that one!", "Interesting point!", "Gotcha.")
