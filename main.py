"""
Ponto de entrada principal da aplicação
Configura os logs e executa a API FastAPI
"""
import logging

import uvicorn

from config import ENVIRONMENT, LOG_LEVEL, PORT


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


if __name__ == "__main__":
    configure_logging()
    logger = logging.getLogger("pebble")
    logger.info("Iniciando Pebble API na porta %s (%s)", PORT, ENVIRONMENT)

    uvicorn.run(
        "web_api:app",
        host="0.0.0.0",
        port=PORT,
        reload=ENVIRONMENT == "development",
        log_level=LOG_LEVEL.lower(),
    )
