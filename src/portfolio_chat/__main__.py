import sys

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from portfolio_chat.api import create_app
from portfolio_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from portfolio_chat.bootstrap import bootstrap_runtime


def main() -> None:
    load_dotenv()

    app_config = parse_app_config(load_json_config())
    env = resolve_runtime_env(app_config.provider_name)
    if not env.provider_api_key:
        logger.error(f"{env.provider_env_var} environment variable is required.")
        sys.exit(1)

    runtime = bootstrap_runtime(app_config, env)
    app = create_app(runtime, cors_origins=app_config.cors_origins)

    logger.info(
        f"portfolio-chat on http://{app_config.host}:{app_config.port} "
        f"(provider: {app_config.provider_name}, entities: {len(runtime.catalog)}, "
        f"tools: {', '.join(t.name for t in runtime.tools)})"
    )
    if runtime.log_descriptions:
        logger.info(f"Logging: {', '.join(runtime.log_descriptions)}")

    uvicorn.run(app, host=app_config.host, port=app_config.port, log_level=app_config.log_level.lower(), log_config=None)


if __name__ == "__main__":
    main()
