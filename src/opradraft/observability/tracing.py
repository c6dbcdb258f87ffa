"""MLflow tracking setup and fail-soft metric helpers.

Spans and traces are created with ``mlflow`` directly in the modules that
own them. The helpers here cover the calls that must never break a
pipeline operation: metrics, tags, and artifacts are logged when a run or
trace context exists, and failures are logged at debug level.
"""

import logging
from contextlib import contextmanager

import mlflow
from mlflow.exceptions import MlflowException

logger = logging.getLogger(__name__)

_tracking_configured = False


def configure_tracking(tracking_uri: str, experiment_name: str) -> None:
    """Point MLflow at the tracking server and select the experiment."""
    global _tracking_configured
    mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(experiment_name)
    mlflow.config.enable_async_logging()
    _tracking_configured = True
    logger.info("MLflow tracking configured: %s (%s)", tracking_uri, experiment_name)


@contextmanager
def start_run(run_name: str, **params: str):
    """MLflow run around one pipeline operation; a no-op until tracking is configured.

    Nested calls reuse the outer run so that a generate call, which analyzes
    internally, logs into a single run.
    """
    if not _tracking_configured or mlflow.active_run() is not None:
        yield None
        return
    try:
        run = mlflow.start_run(run_name=run_name)
    except MlflowException as e:
        logger.warning("Could not start MLflow run %s: %s", run_name, e)
        yield None
        return
    with run:
        if params:
            mlflow.log_params(params)
        yield run


def log_metrics(metrics: dict[str, float]) -> None:
    """Log metrics to the active run, if any."""
    if mlflow.active_run() is None:
        return
    try:
        mlflow.log_metrics(metrics)
    except MlflowException as e:
        logger.debug("Metric logging failed: %s", e)


def set_tag(key: str, value: str) -> None:
    if mlflow.active_run() is None:
        return
    try:
        mlflow.set_tag(key, value)
    except MlflowException as e:
        logger.debug("Tag logging failed: %s", e)


def log_text(text: str, artifact_file: str) -> None:
    if mlflow.active_run() is None:
        return
    try:
        mlflow.log_text(text, artifact_file)
    except MlflowException as e:
        logger.debug("Artifact logging failed: %s", e)
