# SPDX-License-Identifier: Apache-2.0

"""
WSGI entry point.
"""

import os
from civic_api.app import create_app

# Create the Flask application instance from environment settings
app = create_app()

if __name__ == "__main__":
    app.run(debug=app.config['DEBUG'], host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
