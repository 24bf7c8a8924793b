import logging

import uvicorn

from catalog.api import create_app
from catalog.config import get_config


if __name__ == "__main__":
    config = get_config()
    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(create_app(title=config.api.title), host="0.0.0.0", port=8000)
