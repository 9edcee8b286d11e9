"""ASGI entrypoint for the avatar studio bot."""

from avatar_studio.api.app import create_app
from avatar_studio.containers import build_container

app = create_app(build_container())
