# Overview: Flask extension instances shared by the fulfillment app, CLI and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Webhook and cron workers hold connections between bursts
db = SQLAlchemy(engine_options={"pool_pre_ping": True})

# SQLite cannot ALTER constraints in place; autogenerate emits batch operations
migrate = Migrate(render_as_batch=True, compare_type=True)
