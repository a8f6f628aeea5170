import os

import ledger_settings as settings
from ledger_server import create_app


if __name__ == '__main__':
    settings.configure_logging()
    debug = os.getenv('FLASK_DEBUG', '0') == '1'
    port = int(os.getenv('PORT', '5000'))
    host = os.getenv('HOST', '127.0.0.1')
    app = create_app()
    try:
        app.run(host=host, port=port, debug=debug, use_reloader=False)
    finally:
        app.extensions['ledger']['gateway'].close()
