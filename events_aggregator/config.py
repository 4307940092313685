import os
import json
import logging
from typing import Any, Dict

from kafka import KafkaConsumer, KafkaProducer
from kubernetes import config as kube_config

from common.config.secrets import get_secret, redact

logger = logging.getLogger("aggregator-config")

def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"CRITICAL: {name} must be an integer, got {raw!r}") from None

def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"CRITICAL: {name} must be a number, got {raw!r}") from None

def get_config() -> Dict[str, Any]:
    return {
        "KAFKA_BOOTSTRAP_SERVERS": os.getenv("KAFKA_BOOTSTRAP_SERVERS", "redpanda:29092"),
        "KAFKA_SECURITY_PROTOCOL": os.getenv("KAFKA_SECURITY_PROTOCOL", "PLAINTEXT"),
        "KAFKA_SSL_CAFILE": os.getenv("KAFKA_SSL_CAFILE"),
        "KAFKA_SSL_CERTFILE": os.getenv("KAFKA_SSL_CERTFILE"),
        "KAFKA_SSL_KEYFILE": os.getenv("KAFKA_SSL_KEYFILE"),
        "KAFKA_SASL_MECHANISM": os.getenv("KAFKA_SASL_MECHANISM", "PLAIN"),
        "KAFKA_SASL_USERNAME": os.getenv("KAFKA_SASL_USERNAME"),
        "KAFKA_SASL_PASSWORD": get_secret("KAFKA_SASL_PASSWORD"),
        "EVENTS_TOPIC": os.getenv("EVENTS_TOPIC", "stats.events.v1"),
        "EVENTS_CONSUMER_GROUP": os.getenv("EVENTS_CONSUMER_GROUP", "stats-consumer"),
        "EVENTS_DLQ_TOPIC": os.getenv("EVENTS_DLQ_TOPIC", ""),
        "EVENT_STORE_GROUP": os.getenv("EVENT_STORE_GROUP", "openebs.io"),
        "EVENT_STORE_VERSION": os.getenv("EVENT_STORE_VERSION", "v1alpha1"),
        "EVENT_STORE_PLURAL": os.getenv("EVENT_STORE_PLURAL", "callhomeevents"),
        "EVENT_STORE_KIND": os.getenv("EVENT_STORE_KIND", "CallHomeEvent"),
        "EVENT_STORE_NAME": os.getenv("EVENT_STORE_NAME", "callhome-stats"),
        "EVENT_STORE_NAMESPACE": os.getenv("EVENT_STORE_NAMESPACE", "mayastor"),
        "RECONCILE_INTERVAL_SECONDS": _float_env("RECONCILE_INTERVAL_SECONDS", 60.0),
        "SHUTDOWN_GRACE_SECONDS": _float_env("SHUTDOWN_GRACE_SECONDS", 10.0),
        "BOOTSTRAP_MAX_RETRIES": _int_env("BOOTSTRAP_MAX_RETRIES", 5),
        "BOOTSTRAP_BASE_DELAY": _float_env("BOOTSTRAP_BASE_DELAY", 1.0),
        "HTTP_HOST": os.getenv("HTTP_HOST", "0.0.0.0"),
        "HTTP_PORT": _int_env("HTTP_PORT", 9090),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
    }

def describe_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of the config that is safe to log."""
    safe = dict(config)
    safe["KAFKA_SASL_PASSWORD"] = redact(config.get("KAFKA_SASL_PASSWORD"))
    return safe

def _kafka_kwargs(config: Dict[str, Any]) -> Dict[str, Any]:
    protocol = config["KAFKA_SECURITY_PROTOCOL"]
    kwargs = {
        "bootstrap_servers": config["KAFKA_BOOTSTRAP_SERVERS"],
        "security_protocol": protocol,
    }

    if protocol in ("SSL", "SASL_SSL"):
        kwargs["ssl_cafile"] = config["KAFKA_SSL_CAFILE"]
        kwargs["ssl_certfile"] = config["KAFKA_SSL_CERTFILE"]
        kwargs["ssl_keyfile"] = config["KAFKA_SSL_KEYFILE"]

    if protocol.startswith("SASL_"):
        kwargs["sasl_mechanism"] = config["KAFKA_SASL_MECHANISM"]
        kwargs["sasl_plain_username"] = config["KAFKA_SASL_USERNAME"]
        kwargs["sasl_plain_password"] = config["KAFKA_SASL_PASSWORD"]

    return kwargs

def build_consumer(config: Dict[str, Any]) -> KafkaConsumer:
    # One record per poll and manual commits: at most one unacknowledged message.
    return KafkaConsumer(
        config["EVENTS_TOPIC"],
        group_id=config["EVENTS_CONSUMER_GROUP"],
        auto_offset_reset="earliest",
        enable_auto_commit=False,
        max_poll_records=1,
        **_kafka_kwargs(config)
    )

def build_producer(config: Dict[str, Any]) -> KafkaProducer:
    return KafkaProducer(
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        **_kafka_kwargs(config)
    )

def load_kube_config():
    try:
        kube_config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except kube_config.ConfigException:
        kube_config.load_kube_config()
        logger.info("Loaded Kubernetes config from kubeconfig")
