import os
import sqlite3
import asyncio
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import discord
from discord.ext import commands
from openai import OpenAI
from completion.gateway import CompletionGateway
from completion.gateway import CompletionOptions
from config.defaults import DEFAULT_COMMAND_PREFIX
from config.defaults import DEFAULT_COMPLETION_TIMEOUT_SECONDS
from config.defaults import DEFAULT_MAX_TOKENS
from config.defaults import DEFAULT_MEMORY_ENABLED
from config.defaults import DEFAULT_MEMORY_LIMIT
from config.defaults import DEFAULT_MEMORY_MAX_IDLE_HOURS
from config.defaults import DEFAULT_MEMORY_SWEEP_INTERVAL_SECONDS
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_STORE_TIMEOUT_SECONDS
from config.defaults import DEFAULT_TEMPERATURE
from config.defaults import DEFAULT_TOKEN_LIMIT
from config.defaults import DEFAULT_USAGE_TIMEZONE
from config.defaults import DISCORD_MAX_MESSAGE_LEN
from config.defaults import MAINTENANCE_NOTICE
from config.defaults import SILENCED_NOTICE
from controller.context import ExemptIdentities
from controller.context import env_float
from controller.context import env_int
from controller.context import parse_bool
from controller.context import parse_id_set
from controller.mode import OperatingMode
from controller.mode import OperatingModeState
from controller.orchestrator import OrchestratorPolicy
from controller.orchestrator import ResponseOrchestrator
from controller.persona import load_persona
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from memory.service import ConversationMemory
from misc.runtime_wiring import wire_bot_runtime
from store.records import RecordStore
from usage.service import UsageLedger

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")
if not OPENAI_API_KEY:
    raise RuntimeError("Missing OPENAI_API_KEY env var")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL).strip() or DEFAULT_OPENAI_MODEL
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "").strip() or None
MAX_TOKENS = env_int("TOKENGATE_MAX_TOKENS", DEFAULT_MAX_TOKENS, minimum=1)
TEMPERATURE = env_float("TOKENGATE_TEMPERATURE", DEFAULT_TEMPERATURE)
COMPLETION_TIMEOUT_SECONDS = env_float("TOKENGATE_COMPLETION_TIMEOUT_SECONDS", DEFAULT_COMPLETION_TIMEOUT_SECONDS)

DB_PATH = os.getenv("TOKENGATE_DB_PATH", "tokengate.db")
STORE_TIMEOUT_SECONDS = env_float("TOKENGATE_STORE_TIMEOUT_SECONDS", DEFAULT_STORE_TIMEOUT_SECONDS)

# =========================
# OPERATING MODE DEFAULTS
# =========================
# Persisted admin changes override these on startup, except the channel
# allow-list, which is the union of both.
TOKEN_LIMIT = env_int("TOKENGATE_TOKEN_LIMIT", DEFAULT_TOKEN_LIMIT, minimum=0)
MEMORY_LIMIT = env_int("TOKENGATE_MEMORY_LIMIT", DEFAULT_MEMORY_LIMIT, minimum=0)
MEMORY_ENABLED = parse_bool(os.getenv("TOKENGATE_MEMORY_ENABLED"), DEFAULT_MEMORY_ENABLED)
COMMAND_PREFIX = os.getenv("TOKENGATE_COMMAND_PREFIX", DEFAULT_COMMAND_PREFIX).strip() or DEFAULT_COMMAND_PREFIX
ALLOWED_CHANNEL_IDS = parse_id_set(os.getenv("TOKENGATE_ALLOWED_CHANNEL_IDS"))

ADMIN_IDS = parse_id_set(os.getenv("TOKENGATE_ADMIN_IDS"))
WHITELIST_IDS = parse_id_set(os.getenv("TOKENGATE_WHITELIST_IDS"))
DM_EXEMPT_ONLY = parse_bool(os.getenv("TOKENGATE_DM_EXEMPT_ONLY"), False)
SILENCED_NOTICE_TEXT = os.getenv("TOKENGATE_SILENCED_NOTICE", SILENCED_NOTICE)
MAINTENANCE_NOTICE_TEXT = os.getenv("TOKENGATE_MAINTENANCE_NOTICE", MAINTENANCE_NOTICE)
MAX_MESSAGE_LEN = env_int("TOKENGATE_MAX_MESSAGE_LEN", DISCORD_MAX_MESSAGE_LEN, minimum=1)

MEMORY_SWEEP_INTERVAL_SECONDS = env_int(
    "TOKENGATE_MEMORY_SWEEP_INTERVAL_SECONDS", DEFAULT_MEMORY_SWEEP_INTERVAL_SECONDS, minimum=60
)
MEMORY_MAX_IDLE_HOURS = env_int("TOKENGATE_MEMORY_MAX_IDLE_HOURS", DEFAULT_MEMORY_MAX_IDLE_HOURS, minimum=0)

_raw_tz = os.getenv("TOKENGATE_USAGE_TIMEZONE", DEFAULT_USAGE_TIMEZONE).strip() or DEFAULT_USAGE_TIMEZONE
try:
    USAGE_TZ = ZoneInfo(_raw_tz)
except (ZoneInfoNotFoundError, ValueError):
    print(f"[CFG] invalid TOKENGATE_USAGE_TIMEZONE={_raw_tz!r}; falling back to {DEFAULT_USAGE_TIMEZONE!r}")
    USAGE_TZ = ZoneInfo(DEFAULT_USAGE_TIMEZONE)

PERSONA_PATH = os.getenv(
    "TOKENGATE_PERSONA_PATH",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "config", "persona.yml"),
)
PERSONA, PERSONA_WARNING = load_persona(PERSONA_PATH, name_override=os.getenv("TOKENGATE_BOT_NAME") or None)

print(
    f"[CFG] model={OPENAI_MODEL} max_tokens={MAX_TOKENS} temperature={TEMPERATURE} "
    f"token_limit={TOKEN_LIMIT} memory_limit={MEMORY_LIMIT} memory_enabled={MEMORY_ENABLED} "
    f"prefix={COMMAND_PREFIX!r} allowed_channels={len(ALLOWED_CHANNEL_IDS)} "
    f"admins={len(ADMIN_IDS)} whitelist={len(WHITELIST_IDS)} dm_exempt_only={DM_EXEMPT_ONLY} "
    f"usage_tz={USAGE_TZ.key}"
)
print(f"[CFG] persona={PERSONA.name} version={PERSONA.version} path={PERSONA_PATH}")
if PERSONA_WARNING:
    print(f"[CFG] {PERSONA_WARNING}")
if not ADMIN_IDS:
    print("[CFG] no TOKENGATE_ADMIN_IDS configured; admin commands are unreachable")


def today_local() -> date:
    return datetime.now(USAGE_TZ).date()


# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()

    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    repo_root = os.path.dirname(os.path.abspath(__file__))
    applied = apply_sqlite_migrations(conn, os.path.join(repo_root, "migrations"))
    latest = list_schema_migrations_sync(conn, limit=1)
    print(
        f"[DB] migrations applied_now={len(applied)} "
        f"latest={latest[0][0] + '_' + latest[0][1] if latest else 'none'}"
    )
    conn.commit()
    return conn


db_conn = init_db(DB_PATH)
print(f"[DB] Using DB_PATH={DB_PATH}")
db_lock = asyncio.Lock()

# =========================
# SERVICES
# =========================
client = OpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
record_store = RecordStore(db_lock=db_lock, db_conn=db_conn, timeout_seconds=STORE_TIMEOUT_SECONDS)

mode = OperatingMode(
    store=record_store,
    defaults=OperatingModeState(
        allowed_channel_ids=set(ALLOWED_CHANNEL_IDS),
        token_limit_per_day=TOKEN_LIMIT,
        memory_limit=MEMORY_LIMIT,
        command_prefix=COMMAND_PREFIX,
        memory_enabled=MEMORY_ENABLED,
    ),
)
ledger = UsageLedger(
    store=record_store,
    token_limit=lambda: mode.token_limit_per_day,
    today=today_local,
)
memory = ConversationMemory(store=record_store, memory_limit=lambda: mode.memory_limit)
gateway = CompletionGateway(
    client=client,
    model=OPENAI_MODEL,
    options=CompletionOptions(max_tokens=MAX_TOKENS, temperature=TEMPERATURE),
    timeout_seconds=COMPLETION_TIMEOUT_SECONDS,
)
exempt = ExemptIdentities(admin_ids=frozenset(ADMIN_IDS), whitelist_ids=frozenset(WHITELIST_IDS))
orchestrator = ResponseOrchestrator(
    mode=mode,
    ledger=ledger,
    memory=memory,
    gateway=gateway,
    persona=PERSONA,
    exempt=exempt,
    today=today_local,
    policy=OrchestratorPolicy(
        silenced_notice=SILENCED_NOTICE_TEXT,
        maintenance_notice=MAINTENANCE_NOTICE_TEXT,
        dm_exempt_only=DM_EXEMPT_ONLY,
        max_message_len=MAX_MESSAGE_LEN,
    ),
)

# =========================
# DISCORD
# =========================
intents = discord.Intents.default()
intents.message_content = True

# the prefix can change at runtime, so it is read from the operating mode per message
bot = commands.Bot(
    command_prefix=lambda _bot, _message: mode.command_prefix,
    intents=intents,
    help_command=None,
)

wire_bot_runtime(
    bot,
    mode=mode,
    ledger=ledger,
    memory=memory,
    orchestrator=orchestrator,
    exempt=exempt,
    max_message_len=MAX_MESSAGE_LEN,
    memory_sweep_interval_seconds=MEMORY_SWEEP_INTERVAL_SECONDS,
    memory_max_idle_hours=MEMORY_MAX_IDLE_HOURS,
)

bot.run(DISCORD_TOKEN)
