import argparse

import uvicorn

from scale_bridge.config.settings import settings
from scale_bridge.utils.logger import configurar_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="scale-bridge",
        description="Gateway de borda: ponte MQTT local ⇄ nuvem com API de leitura",
    )
    parser.add_argument("--host", default=settings.WEB_HOST)
    parser.add_argument("--port", type=int, default=settings.WEB_PORT)
    parser.add_argument("--log-level", default=settings.LOG_LEVEL.lower())
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Executa apenas a ponte MQTT, sem a API HTTP.",
    )
    args = parser.parse_args()
    configurar_logging(args.log_level)

    if args.no_api:
        from scale_bridge.mqtt.ponte import run_bridge

        run_bridge()
        return

    # Um único worker: a ponte vive no processo da API.
    uvicorn.run(
        "scale_bridge.api.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        workers=1,
    )


if __name__ == "__main__":
    main()
