import os

# Rollout settings are read from the environment; keep the developer's
# shell from leaking into tests
for _var in (
    "KUBE_WAIT_FOR_LIVE",
    "KUBE_STABILITY_CHECK_DURATION",
    "KUBE_TICK",
    "KUBERNETES_LOG_LINES",
    "KUBERNETES_LOG_TIMEOUT",
    "KUBE_ROLLOUT_CONCURRENCY",
):
    os.environ.pop(_var, None)

from tests.fixtures import *  # noqa: E402,F401,F403
