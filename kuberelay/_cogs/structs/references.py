"""
References to the Kubernetes resources served by the relays.

Only a few resources are needed: pods (for their logs) and the workload
controllers (for their status updates). They are all namespaced, but can
also be addressed cluster-wide (i.e. in all namespaces at once).
"""
import dataclasses
import urllib.parse
from typing import Dict, List, Mapping, Optional


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    A reference to a very specific resource kind of a specific API version.
    """

    group: str
    """
    The resource's API group; e.g. ``"apps"``, or an empty string for core v1.
    """

    version: str
    """
    The resource's API version; e.g. ``"v1"``.
    """

    plural: str
    """
    The resource's plural name; e.g. ``"deployments"``.
    It is used as an API endpoint, together with API group & version.
    """

    kind: str
    """
    The resource's kind (as in YAML files); e.g. ``"Deployment"``.
    """

    namespaced: bool = True

    def __repr__(self) -> str:
        return f'{self.plural}.{self.version}.{self.group}'.strip('.')

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Optional[str] = None,
            name: Optional[str] = None,
            subresource: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build a URL to be used with K8s API.

        If the namespace is not set, a cluster-wide URL is returned.
        If the name is not set, the URL for the resource list is returned.
        Params go to the query parameters (``?param1=value1&param2=value2...``).
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        parts: List[Optional[str]] = [
            '/api' if self.group == '' and self.version == 'v1' else '/apis',
            self.group,
            self.version,
            'namespaces' if namespace is not None else None,
            namespace,
            self.plural,
            name,
            subresource,
        ]

        query = urllib.parse.urlencode(params, encoding='utf-8') if params else ''
        path = '/'.join([part for part in parts if part])
        url = path + ('?' if query else '') + query
        return url if server is None else server.rstrip('/') + '/' + url.lstrip('/')


PODS = Resource('', 'v1', 'pods', 'Pod')

# The workload controllers with status updates; keyed by their lower-cased kinds.
WORKLOADS: Dict[str, Resource] = {
    'deployment': Resource('apps', 'v1', 'deployments', 'Deployment'),
    'statefulset': Resource('apps', 'v1', 'statefulsets', 'StatefulSet'),
    'replicaset': Resource('apps', 'v1', 'replicasets', 'ReplicaSet'),
    'daemonset': Resource('apps', 'v1', 'daemonsets', 'DaemonSet'),
}
