import uvicorn

from api.app_factory import create_app
from main_configs import MAIN_APP_HOST, MAIN_APP_PORT

# ============================================================
# App Initialization
# ============================================================
app = create_app()

# ============================================================
# Local Dev Entry
# ============================================================

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=MAIN_APP_HOST,
        port=MAIN_APP_PORT,
        reload=True,
    )
