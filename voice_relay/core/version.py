APP_NAME = "Voice Relay API"
APP_VERSION = "1.0.0"
