# zork_app/config/config.py
# -*- coding: utf-8 -*-
import os
from dotenv import load_dotenv

# Project root (one level above the zork_app package).
project_root_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))

# The test suite sets FLASK_ENV=testing; in that case .env.test wins over everything else.
if os.environ.get('FLASK_ENV') == 'testing':
    test_dotenv_path = os.path.join(project_root_dir, '.env.test')
    if os.path.exists(test_dotenv_path):
        load_dotenv(dotenv_path=test_dotenv_path, override=True)
        print(f"DEBUG [config.py]: LOADED TEST CONFIG from: {test_dotenv_path}")

basedir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
dotenv_path = os.path.join(project_root_dir, '.env')

if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path=dotenv_path, override=False)
    print(f"DEBUG [config.py]: Loaded .env from: {dotenv_path}")


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: str = '') -> list:
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(',') if item.strip()]


class Config:
    # --- Flask App ---
    SECRET_KEY = os.environ.get('SECRET_KEY', 'default-insecure-secret-key')
    FLASK_ENV = os.environ.get('FLASK_ENV', 'production')
    DEBUG = FLASK_ENV == 'development'
    TESTING = False

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(project_root_dir, 'logs'))
    LOG_FILE = os.path.join(LOG_DIR, 'app.log')
    LOG_JSON_FILE = os.path.join(LOG_DIR, 'app.json')

    # --- OpenAI Assistants ---
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    OPENAI_ASSISTANT_ID = os.environ.get('OPENAI_ASSISTANT_ID')
    OPENAI_MODEL = os.environ.get('OPENAI_MODEL', 'gpt-4o-mini')
    OPENAI_TIMEOUT = float(os.environ.get('OPENAI_TIMEOUT', 30.0))
    OPENAI_MAX_RETRIES = int(os.environ.get('OPENAI_MAX_RETRIES', 2))

    # --- Run polling ---
    RUN_POLL_INTERVAL_SECONDS = float(os.environ.get('RUN_POLL_INTERVAL_SECONDS', 1.0))
    RUN_POLL_MAX_INTERVAL_SECONDS = float(os.environ.get('RUN_POLL_MAX_INTERVAL_SECONDS', 8.0))
    RUN_POLL_BACKOFF = float(os.environ.get('RUN_POLL_BACKOFF', 2.0))
    RUN_TIMEOUT_SECONDS = float(os.environ.get('RUN_TIMEOUT_SECONDS', 120.0))

    # --- Reply handling ---
    REPLY_FORMAT = os.environ.get('REPLY_FORMAT', 'json').lower()
    if REPLY_FORMAT not in ('json', 'text'):
        print(f"WARNING [Config]: Invalid REPLY_FORMAT '{REPLY_FORMAT}'. Defaulting to 'json'.")
        REPLY_FORMAT = 'json'
    MAX_MESSAGE_LENGTH = int(os.environ.get('MAX_MESSAGE_LENGTH', 4000))
    NEW_GAME_PHRASES = _env_list('NEW_GAME_PHRASES')

    # --- Database ---
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        'sqlite:///' + os.path.join(project_root_dir, 'database', 'zork.db'),
    )
    if SQLALCHEMY_DATABASE_URI.startswith("postgres://"):
        SQLALCHEMY_DATABASE_URI = SQLALCHEMY_DATABASE_URI.replace("postgres://", "postgresql://", 1)
    DATABASE_URL = SQLALCHEMY_DATABASE_URI
    SQLALCHEMY_ECHO = DEBUG
    AUTO_CREATE_TABLES = _env_bool('AUTO_CREATE_TABLES', 'true')

    # --- Thread cache ---
    THREAD_CACHE_MAX_ENTRIES = int(os.environ.get('THREAD_CACHE_MAX_ENTRIES', 10000))

    # --- Redis (locks and rate limiting) ---
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    LOCK_BACKEND = os.environ.get('LOCK_BACKEND', 'local').lower()
    # Must cover two polling phases (waiting for a previous run, then our own).
    LOCK_TIMEOUT_SECONDS = float(os.environ.get('LOCK_TIMEOUT_SECONDS', 2 * RUN_TIMEOUT_SECONDS + 30))
    # How long a second message for a busy conversation waits before a 409.
    LOCK_WAIT_SECONDS = float(os.environ.get('LOCK_WAIT_SECONDS', LOCK_TIMEOUT_SECONDS))
    # Number of reverse proxies whose X-Forwarded-For is trusted (werkzeug ProxyFix).
    TRUSTED_PROXY_HOPS = int(os.environ.get('TRUSTED_PROXY_HOPS', 0))

    # --- HTTP boundary ---
    CORS_ORIGINS = _env_list('CORS_ORIGINS', '*')
    RATE_LIMIT_ENABLED = _env_bool('RATE_LIMIT_ENABLED', 'true')
    RATE_LIMIT_WINDOW_MS = int(os.environ.get('RATE_LIMIT_WINDOW_MS', 15 * 60 * 1000))
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get('RATE_LIMIT_MAX_REQUESTS', 100))

    # --- System prompt used when provisioning the assistant ---
    SYSTEM_PROMPT_FILE = os.environ.get('SYSTEM_PROMPT_FILE', os.path.join(basedir, 'data', 'system_prompt.txt'))


# --- Config Sanity Check ---
if __name__ != "__main__":
    print("--- Config Initialized ---")
    print(f"ENV: {Config.FLASK_ENV}, DEBUG={Config.DEBUG}, Reply format: {Config.REPLY_FORMAT}")
    print(f"DB URI: {Config.SQLALCHEMY_DATABASE_URI.split('@')[-1]}")
    print(f"OpenAI API key loaded: {'Yes' if Config.OPENAI_API_KEY else 'No'}")
    print(f"Assistant ID: {Config.OPENAI_ASSISTANT_ID or 'MISSING'}")
    print(f"Lock backend: {Config.LOCK_BACKEND}, Rate limit: {Config.RATE_LIMIT_MAX_REQUESTS}/{Config.RATE_LIMIT_WINDOW_MS}ms")
    print("--------------------")
