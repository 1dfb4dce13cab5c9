"""
Servidor de desenvolvimento: ``python run_app.py``.

Usa DevConfig, que faz login automático com AUTH_STUB_EMAIL quando o proxy
OAuth não está na frente da aplicação.
"""

import os

from atesto import create_app
from config import DevConfig

app = create_app(DevConfig)


if __name__ == "__main__":
    app.run(
        host=os.environ.get("FLASK_RUN_HOST", "127.0.0.1"),
        port=int(os.environ.get("FLASK_RUN_PORT", "5000")),
        debug=app.config.get("DEBUG", False),
    )
