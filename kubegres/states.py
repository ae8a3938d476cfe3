"""Loading of the deployed configuration and back-up resources of a cluster."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)

BASE_CONFIG_MAP_NAME = "base-kubegres-config"
BASE_CONFIG_MAP_VOLUME_NAME = "base-config"
CUSTOM_CONFIG_MAP_VOLUME_NAME = "custom-config"

CONFIG_MAP_DATA_KEY_POSTGRES_CONF = "postgres.conf"
CONFIG_MAP_DATA_KEY_PRIMARY_INIT_SCRIPT = "primary_init_script.sh"
CONFIG_MAP_DATA_KEY_PG_HBA_CONF = "pg_hba.conf"
CONFIG_MAP_DATA_KEY_BACKUP_SCRIPT = "backup_database.sh"

KIND_CONFIG_MAP = "ConfigMap"
KIND_CRON_JOB = "CronJob"
KIND_PVC = "PersistentVolumeClaim"


class ResourceNotFoundError(LookupError):
    """Raised by a client when the requested resource does not exist."""


class ResourceClient(Protocol):
    def get(self, kind: str, namespace: str, name: str) -> Mapping[str, Any]:
        """Return the resource as a mapping or raise ResourceNotFoundError."""


def _get_optional(
    client: ResourceClient, kind: str, namespace: str, name: str, event: str, message: str, label: str
) -> Optional[Mapping[str, Any]]:
    if not name:
        return None
    try:
        return client.get(kind, namespace, name)
    except ResourceNotFoundError:
        return None
    except Exception:
        logger.exception("%s: %s %s=%s", event, message, label, name)
        raise


def _name(resource: Optional[Mapping[str, Any]]) -> str:
    if not resource:
        return ""
    return (resource.get("metadata") or {}).get("name", "") or ""


@dataclass
class ConfigLocations:
    """Volume name holding each config file: base-config or custom-config."""

    postgres_conf: str = BASE_CONFIG_MAP_VOLUME_NAME
    primary_init_script: str = BASE_CONFIG_MAP_VOLUME_NAME
    backup_script: str = BASE_CONFIG_MAP_VOLUME_NAME
    pg_hba_conf: str = BASE_CONFIG_MAP_VOLUME_NAME


@dataclass
class ConfigStates:
    """Which config maps are deployed and where each config file comes from."""

    custom_config_name: str = ""
    base_config_name: str = BASE_CONFIG_MAP_NAME
    is_base_config_deployed: bool = False
    is_custom_config_deployed: bool = False
    config_locations: ConfigLocations = field(default_factory=ConfigLocations)


def load_config_states(client: ResourceClient, namespace: str, custom_config_name: str) -> ConfigStates:
    states = ConfigStates(custom_config_name=custom_config_name)

    base = _get_optional(
        client, KIND_CONFIG_MAP, namespace, states.base_config_name,
        "ConfigMapLoadingErr", "Unable to load any deployed Base Config.", "Config name",
    )
    if _name(base) == states.base_config_name:
        states.is_base_config_deployed = True

    if custom_config_name == states.base_config_name:
        return states

    custom = _get_optional(
        client, KIND_CONFIG_MAP, namespace, custom_config_name,
        "ConfigMapLoadingErr", "Unable to load any deployed Init Config.", "Config name",
    )
    custom_name = _name(custom)
    if custom_name and custom_name != states.base_config_name:
        states.is_custom_config_deployed = True
        data = (custom or {}).get("data") or {}
        locations = states.config_locations
        if data.get(CONFIG_MAP_DATA_KEY_POSTGRES_CONF):
            locations.postgres_conf = CUSTOM_CONFIG_MAP_VOLUME_NAME
        if data.get(CONFIG_MAP_DATA_KEY_PRIMARY_INIT_SCRIPT):
            locations.primary_init_script = CUSTOM_CONFIG_MAP_VOLUME_NAME
        if data.get(CONFIG_MAP_DATA_KEY_BACKUP_SCRIPT):
            locations.backup_script = CUSTOM_CONFIG_MAP_VOLUME_NAME
        if data.get(CONFIG_MAP_DATA_KEY_PG_HBA_CONF):
            locations.pg_hba_conf = CUSTOM_CONFIG_MAP_VOLUME_NAME

    return states


@dataclass
class BackUpStates:
    """Deployment state of the back-up CronJob and its PVC."""

    is_cron_job_deployed: bool = False
    is_pvc_deployed: bool = False
    config_map: str = ""
    cron_job_last_schedule_time: str = ""
    deployed_cron_job: Optional[Mapping[str, Any]] = None


def _cron_job_volumes(cron_job: Mapping[str, Any]) -> list:
    spec = cron_job.get("spec") or {}
    job_spec = (spec.get("jobTemplate") or {}).get("spec") or {}
    pod_spec = (job_spec.get("template") or {}).get("spec") or {}
    return list(pod_spec.get("volumes") or [])


def load_backup_states(
    client: ResourceClient, namespace: str, cron_job_name: str, backup_pvc_name: str
) -> BackUpStates:
    states = BackUpStates()

    cron_job = _get_optional(
        client, KIND_CRON_JOB, namespace, cron_job_name,
        "BackUpCronJobLoadingErr", "Unable to load any deployed BackUp CronJob.", "CronJob name",
    )
    if _name(cron_job):
        states.deployed_cron_job = cron_job
        states.is_cron_job_deployed = True
        volumes = _cron_job_volumes(cron_job)
        if len(volumes) >= 2:
            states.config_map = (volumes[1].get("configMap") or {}).get("name", "") or ""
        last_schedule = (cron_job.get("status") or {}).get("lastScheduleTime")
        if last_schedule is not None:
            states.cron_job_last_schedule_time = str(last_schedule)

    pvc = _get_optional(
        client, KIND_PVC, namespace, backup_pvc_name,
        "BackUpPersistentVolumeClaimLoadingErr",
        "Unable to load any deployed BackUp PersistentVolumeClaim.",
        "PersistentVolumeClaim name",
    )
    if _name(pvc):
        states.is_pvc_deployed = True

    return states