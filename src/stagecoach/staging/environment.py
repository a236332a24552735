"""Environment variables handed to staging.

Derived system variables come first, user-defined ones are layered last.  A
user variable with the same key as a derived one drops the derived entry and
is appended with the other user variables, so each key appears once.
"""

from __future__ import annotations

import json

from stagecoach.staging.models import EnvironmentVariable, StagingApp


def system_environment(app: StagingApp) -> list[EnvironmentVariable]:
    env = [
        EnvironmentVariable("VCAP_APPLICATION", json.dumps(app.vcap_application)),
        EnvironmentVariable("VCAP_SERVICES", json.dumps(app.vcap_services)),
    ]
    if app.database_uri:
        env.append(EnvironmentVariable("DATABASE_URL", app.database_uri))
    env.append(EnvironmentVariable("MEMORY_LIMIT", f"{app.memory}m"))
    return env


def staging_environment(app: StagingApp) -> list[EnvironmentVariable]:
    user = [EnvironmentVariable(key, str(value)) for key, value in app.environment_json.items()]
    user_keys = {env.key for env in user}
    derived = [env for env in system_environment(app) if env.key not in user_keys]
    return derived + user


__all__ = ["system_environment", "staging_environment"]
