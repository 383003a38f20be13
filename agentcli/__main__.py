"""Allow ``python -m agentcli``."""

from agentcli.main import run

run()
