from os import environ as env

from dotenv import find_dotenv, load_dotenv

from app_factory import create_app
from services.logger_singleton import LoggerSingleton

# Load environment variables
# Skip loading .env file if USE_DOTENV is set to false (for shell-based env var setup)
USE_DOTENV = env.get("USE_DOTENV", "true").lower() == "true"
if USE_DOTENV:
    # Load .env first (base configuration)
    ENV_FILE = find_dotenv()
    if ENV_FILE:
        load_dotenv(ENV_FILE)
    # Load .env.local second (local overrides with override=True)
    load_dotenv(".env.local", override=True)

logger = LoggerSingleton.get_logger(__name__)
logger.info("Logger initialized at top of main.py!")

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(env.get("PORT", "5001")))
