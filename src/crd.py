"""
Custom Resource Definitions - Describing and ensuring the watched schema.

Validates OpenAPI v3 schemas with jsonschema and makes sure the definition
exists and is established on the API server before the framework starts
watching.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from kubernetes_asyncio.client import ApiextensionsV1Api
from kubernetes_asyncio.client.rest import ApiException
from tenacity import retry_if_exception_type

from backoff_policy import BackOffPolicy, retry_notify
from errors import CRDNotEstablishedError, InvalidConfigError

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "x-kubernetes-preserve-unknown-fields": True,
}


@dataclass
class CustomResourceDefinition:
    """Descriptor of the custom resource the framework reconciles."""

    group: str
    version: str
    kind: str
    plural: str
    scope: str = "Namespaced"
    schema: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SCHEMA))
    short_names: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return f"{self.plural}.{self.group}"

    def validate(self) -> None:
        """
        Check the descriptor before sending it to the API server.

        Raises:
            InvalidConfigError: If a field is missing or the schema is not
                a valid OpenAPI v3 / JSON Schema.
        """
        for attr in ("group", "version", "kind", "plural"):
            if not getattr(self, attr):
                raise InvalidConfigError(f"crd.{attr} must not be empty")
        if self.scope not in ("Namespaced", "Cluster"):
            raise InvalidConfigError(
                f"crd.scope must be 'Namespaced' or 'Cluster', got '{self.scope}'"
            )
        try:
            # OpenAPI 3.0 schemas are a JSON Schema Draft 7 dialect
            Draft7Validator.check_schema(self.schema)
        except SchemaError as e:
            raise InvalidConfigError(f"Invalid schema: {e.message}") from e

    def to_manifest(self) -> Dict[str, Any]:
        """Render the apiextensions.k8s.io/v1 CustomResourceDefinition body."""
        names: Dict[str, Any] = {
            "kind": self.kind,
            "listKind": f"{self.kind}List",
            "plural": self.plural,
            "singular": self.kind.lower(),
        }
        if self.short_names:
            names["shortNames"] = list(self.short_names)

        return {
            "apiVersion": "apiextensions.k8s.io/v1",
            "kind": "CustomResourceDefinition",
            "metadata": {"name": self.name},
            "spec": {
                "group": self.group,
                "scope": self.scope,
                "names": names,
                "versions": [
                    {
                        "name": self.version,
                        "served": True,
                        "storage": True,
                        "schema": {"openAPIV3Schema": self.schema},
                        "subresources": {"status": {}},
                    }
                ],
            },
        }


class CRDClient(ABC):
    """Abstract base class for clients ensuring a CRD exists."""

    @abstractmethod
    async def ensure_created(
        self, crd: CustomResourceDefinition, backoff: BackOffPolicy
    ) -> None:
        """
        Make sure the definition exists and is ready to serve objects.

        Args:
            crd: The definition to ensure.
            backoff: Policy used while waiting for the definition.
        """
        pass


class KubernetesCRDClient(CRDClient):
    """CRD client backed by the Kubernetes apiextensions API."""

    def __init__(self, api: ApiextensionsV1Api):
        if api is None:
            raise InvalidConfigError("api must not be empty")
        self.api = api

    async def ensure_created(
        self, crd: CustomResourceDefinition, backoff: BackOffPolicy
    ) -> None:
        crd.validate()

        try:
            await self.api.create_custom_resource_definition(crd.to_manifest())
            logger.info(f"Created custom resource definition {crd.name}")
        except ApiException as e:
            if e.status != 409:
                raise
            logger.debug(f"Custom resource definition {crd.name} already exists")

        async def established() -> None:
            current = await self.api.read_custom_resource_definition(crd.name)
            conditions = (current.status and current.status.conditions) or []
            for condition in conditions:
                if condition.type == "Established" and condition.status == "True":
                    return
                if condition.type == "NamesAccepted" and condition.status == "False":
                    raise InvalidConfigError(
                        f"names of {crd.name} not accepted: {condition.message}"
                    )
            raise CRDNotEstablishedError(f"{crd.name} is not established yet")

        def notify(err: BaseException, delay: float) -> None:
            logger.debug(f"Waiting for {crd.name}: {err}")

        await retry_notify(
            established,
            backoff,
            notify,
            retry=retry_if_exception_type((CRDNotEstablishedError, ApiException)),
        )
        logger.info(f"Custom resource definition {crd.name} is established")
