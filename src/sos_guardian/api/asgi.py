"""ASGI entrypoint for the SOS API."""

from sos_guardian.api.app import create_app
from sos_guardian.containers import build_container

app = create_app(build_container())
