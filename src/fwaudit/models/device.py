"""Normalized device configuration model.

The engine consumes this model as-is; parsing the vendor configuration and
resolving effective addresses happens upstream. Every model is frozen and
sequences are tuples so nothing downstream can mutate the snapshot.
"""

from __future__ import annotations

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class RuleEndpoint(_Frozen):
    address: str = ""
    port: str = ""
    negated: bool = False


class FirewallRule(_Frozen):
    uuid: str = ""
    type: str = "pass"
    description: str = ""
    interfaces: tuple[str, ...] = ()
    ip_protocol: str = "inet"
    state_type: str = "keep state"
    direction: str = ""
    floating: bool = False
    quick: bool = True
    protocol: str = ""
    source: RuleEndpoint = RuleEndpoint()
    destination: RuleEndpoint = RuleEndpoint()
    gateway: str = ""
    log: bool = False
    disabled: bool = False


class Interface(_Frozen):
    name: str
    physical_if: str = ""
    description: str = ""
    enabled: bool = True
    ip_address: str = ""
    subnet: str = ""
    gateway: str = ""
    type: str = ""
    block_private: bool = False
    block_bogons: bool = False


class InterfaceGroup(_Frozen):
    name: str
    members: tuple[str, ...] = ()


class Alias(_Frozen):
    name: str
    type: str = "host"
    content: tuple[str, ...] = ()


class WebGUI(_Frozen):
    protocol: str = "https"


class SSHConfig(_Frozen):
    enabled: bool = False
    port: int = 22
    authentication_method: str = ""


class Firmware(_Frozen):
    version: str = ""
    plugins: str = ""


class SystemConfig(_Frozen):
    hostname: str = ""
    domain: str = ""
    optimization: str = "normal"
    dns_servers: tuple[str, ...] = ()
    webgui: WebGUI = WebGUI()
    ssh: SSHConfig = SSHConfig()
    firmware: Firmware = Firmware()
    ipv6_allow: bool = False
    disable_checksum_offloading: bool = False
    disable_segmentation_offloading: bool = False
    disable_large_receive_offloading: bool = False


class SNMPConfig(_Frozen):
    ro_community: str = ""
    sys_location: str = ""
    sys_contact: str = ""


class SyslogConfig(_Frozen):
    enabled: bool = False
    system_logging: bool = False
    auth_logging: bool = False
    filter_logging: bool = False
    remote_server: str = ""


class UnboundConfig(_Frozen):
    enabled: bool = False
    dnssec_stripped: bool = False


class DNSConfig(_Frozen):
    unbound: UnboundConfig = UnboundConfig()


class DHCPRange(_Frozen):
    start: str = ""
    end: str = ""


class DHCPScope(_Frozen):
    interface: str
    enabled: bool = False
    range: DHCPRange = DHCPRange()


class Gateway(_Frozen):
    name: str
    interface: str = ""
    address: str = ""


class GatewayGroup(_Frozen):
    name: str
    members: tuple[str, ...] = ()


class Routing(_Frozen):
    gateways: tuple[Gateway, ...] = ()
    gateway_groups: tuple[GatewayGroup, ...] = ()


class User(_Frozen):
    name: str
    disabled: bool = False
    group_name: str = ""


class Group(_Frozen):
    name: str


class Package(_Frozen):
    name: str
    installed: bool = True


class LoadBalancerConfig(_Frozen):
    monitor_types: tuple[str, ...] = ()


class IDSConfig(_Frozen):
    enabled: bool = False


class Device(_Frozen):
    """A single, fully-normalized device configuration snapshot."""

    name: str = ""
    system: SystemConfig = SystemConfig()
    interfaces: tuple[Interface, ...] = ()
    interface_groups: tuple[InterfaceGroup, ...] = ()
    aliases: tuple[Alias, ...] = ()
    firewall_rules: tuple[FirewallRule, ...] = ()
    snmp: SNMPConfig = SNMPConfig()
    syslog: SyslogConfig = SyslogConfig()
    dns: DNSConfig = DNSConfig()
    dhcp: tuple[DHCPScope, ...] = ()
    routing: Routing = Routing()
    users: tuple[User, ...] = ()
    groups: tuple[Group, ...] = ()
    packages: tuple[Package, ...] = ()
    load_balancer: LoadBalancerConfig = LoadBalancerConfig()
    ids: IDSConfig = IDSConfig()

    @property
    def display_name(self) -> str:
        return self.name or self.system.hostname or "device"

    def filter_rules(self) -> list[FirewallRule]:
        """Rules taking part in packet filtering, in configuration order."""
        return [r for r in self.firewall_rules if r.type in ("pass", "block", "reject")]

    def interface_names(self) -> set[str]:
        return {i.name for i in self.interfaces}

    def get_interface(self, name: str) -> Optional[Interface]:
        return next((i for i in self.interfaces if i.name == name), None)

    def expand_interfaces(self, names: Iterable[str]) -> list[str]:
        """Resolve interface-group names to their member interfaces.

        Names that are neither interfaces nor groups are returned unchanged.
        """
        groups = {g.name: g.members for g in self.interface_groups}
        result: list[str] = []
        for name in names:
            for member in groups.get(name, (name,)):
                if member not in result:
                    result.append(member)
        return result

    def gateway_names(self) -> set[str]:
        names = {g.name for g in self.routing.gateways}
        names.update(g.name for g in self.routing.gateway_groups)
        return names

    def installed_packages(self) -> set[str]:
        """Lower-cased names of installed packages."""
        return {p.name.lower() for p in self.packages if p.installed}
