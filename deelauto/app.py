# module deelauto.app
from deelauto.app_setup.factory import create_app

# App globale
app = create_app()
