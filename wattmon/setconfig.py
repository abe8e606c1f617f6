"""Apply a configuration document to the device, its inputs and time zone."""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Union

from wattmon.spiffs import FlashStore
from wattmon.timeservices import DateTimeRule, TimeZone, TimezoneRule
from wattmon.utilities import hash_file, json_detail, json_summary

log = logging.getLogger(__name__)

MAX_INPUTS = 15
DEVICE_NAME = "IotaWatt"
DEFAULT_VREF_VOLTS = 2.5
BURDEN_PATH = "/config/device/burden.txt"
CONFIG_PATH = "config.txt"
CONFIG_NEW_PATH = "config+1.txt"
CONFIG_OLD_PATH = "config-1.txt"
_RENAMED_MODEL = "TDC DA-10-09(USA)"
_COMPACT = (",", ":")

JsonInput = Union[str, bytes, Mapping, Sequence, None]


class ConfigError(ValueError):
    """Raised when a configuration section cannot be used."""


class ChannelType(Enum):
    UNDEFINED = "undefined"
    VOLTAGE = "VT"
    POWER = "CT"


@dataclass
class InputChannel:
    """Configuration of one measurement input."""

    channel: int
    name: str = ""
    model: str = ""
    addr: int = 0
    aref: int = 0
    burden: float = 0.0
    turns: float = 0.0
    calibration: float = 0.0
    phase: float = 0.0
    vphase: float = 0.0
    vchannel: int = 0
    vmult: float = 1.0
    type: ChannelType = ChannelType.UNDEFINED
    active: bool = False
    reverse: bool = False
    signed: bool = False
    double: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"Input({self.channel})"

    def reset(self) -> None:
        """Return the channel to its unconfigured, inactive state."""
        self.model = ""
        self.turns = 0.0
        self.calibration = 0.0
        self.phase = 0.0
        self.vphase = 0.0
        self.vchannel = 0
        self.vmult = 1.0
        self.type = ChannelType.UNDEFINED
        self.active = False
        self.reverse = False
        self.signed = False
        self.double = False


@dataclass
class DeviceSettings:
    """Device-wide settings from the ``device`` section."""

    channels: List[InputChannel] = field(default_factory=list)
    name: str = DEVICE_NAME
    vref_volts: float = DEFAULT_VREF_VOLTS
    has_rtc: bool = True
    https_proxy: Optional[str] = None


def _load(config: JsonInput, what: str) -> Any:
    if isinstance(config, (str, bytes, bytearray)):
        try:
            return json.loads(config)
        except ValueError:
            raise ConfigError(f"{what}: Json parse failed") from None
    return config


def _number(value: Any, kind=float):
    if isinstance(value, (bool, int, float)):
        return kind(value)
    if isinstance(value, str):
        try:
            return kind(float(value))
        except ValueError:
            return kind(0)
    return kind(0)


def _flag(value: Any) -> bool:
    return value if isinstance(value, bool) else False


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def configure_device(
    config: JsonInput,
    channels: List[InputChannel],
    store: Optional[FlashStore],
) -> DeviceSettings:
    """Apply the ``device`` section, creating the inputs on first use.

    A burden list saved in ``store`` overrides the one in the config; a
    burden list from the config is saved to ``store``. Raises ConfigError
    when the channel count would change, which needs a restart.
    """
    device = _load(config, "device")
    if not isinstance(device, Mapping):
        raise ConfigError("device: Json parse failed")

    settings = DeviceSettings(channels=channels)
    if "name" in device:
        settings.name = _text(device["name"])
    if "refvolts" in device:
        settings.vref_volts = _number(device["refvolts"])

    count = _number(device.get("channels"), int) or MAX_INPUTS
    count = min(count, MAX_INPUTS)
    if not channels:
        channels.extend(InputChannel(i) for i in range(count))
    if count != len(channels):
        raise ConfigError(
            f"Channels changing from {len(channels)} to {count}, restart required."
        )

    addresses = device.get("chanaddr")
    if isinstance(addresses, list):
        for channel, addr in zip(channels, addresses):
            channel.addr = _number(addr, int)
    arefs = device.get("chanaref")
    if isinstance(arefs, list):
        for channel, aref in zip(channels, arefs):
            channel.aref = _number(aref, int)

    if store is not None and store.exists(BURDEN_PATH):
        try:
            burdens = json.loads(store.read(BURDEN_PATH))
        except ValueError:
            burdens = []
        if isinstance(burdens, list):
            for channel, burden in zip(channels, burdens):
                channel.burden = _number(burden)
    elif "burden" in device:
        burdens = device["burden"]
        if store is not None:
            store.write(BURDEN_PATH, json.dumps(burdens, separators=_COMPACT))
        if isinstance(burdens, list):
            for channel, burden in zip(channels, burdens):
                channel.burden = _number(burden)

    if "httpsproxy" in device:
        proxy = device["httpsproxy"]
        settings.https_proxy = proxy if isinstance(proxy, str) and proxy else None
    return settings


def _period(section: Any) -> DateTimeRule:
    section = section if isinstance(section, Mapping) else {}
    return DateTimeRule(
        month=_number(section.get("month"), int),
        weekday=_number(section.get("weekday"), int),
        instance=_number(section.get("instance"), int),
        time=_number(section.get("time"), int),
    )


def parse_dst_rule(config: JsonInput) -> TimezoneRule:
    """Build a daylight-saving rule from the ``dstrule`` section."""
    rule = _load(config, "DST")
    if not isinstance(rule, Mapping):
        raise ConfigError("DST: Json parse failed")
    return TimezoneRule(
        begin=_period(rule.get("begin")),
        end=_period(rule.get("end")),
        use_utc=_flag(rule.get("utc")),
        adj_minutes=_number(rule.get("adj"), int),
    )


def configure_inputs(channels: List[InputChannel], inputs: JsonInput) -> None:
    """Apply the ``inputs`` section to ``channels`` in place."""
    entries = _load(inputs, "inputs")
    if not isinstance(entries, list):
        raise ConfigError("inputs: Json parse failed")

    for index, (channel, entry) in enumerate(zip(channels, entries)):
        if not isinstance(entry, Mapping):
            channel.reset()
            continue
        if _number(entry.get("channel"), int) != index:
            log.warning("Config input channel mismatch: %d", index)
            continue
        channel.name = _text(entry.get("name"))
        model = _text(entry.get("model"))
        channel.model = model[:12] if model == _RENAMED_MODEL else model
        channel.turns = _number(entry.get("turns"))
        channel.calibration = _number(entry.get("cal"))
        if channel.turns and channel.burden:
            channel.calibration = channel.turns / channel.burden
        channel.phase = _number(entry.get("phase"))
        channel.vphase = _number(entry.get("vphase"))
        channel.vchannel = _number(entry["vref"], int) if "vref" in entry else 0
        channel.active = True
        kind = _text(entry.get("type"))
        channel.reverse = _flag(entry.get("reverse"))
        if kind == ChannelType.VOLTAGE.value:
            channel.type = ChannelType.VOLTAGE
            channel.vchannel = index
        elif kind == ChannelType.POWER.value:
            channel.type = ChannelType.POWER
            channel.vchannel = _number(entry.get("vchan"), int)
            channel.signed = _flag(entry.get("signed"))
            channel.double = _flag(entry.get("double"))
        else:
            log.warning("unsupported input type: %s", kind)
        channel.vmult = _number(entry["vmult"]) if "vmult" in entry else 1.0
        if channel.double:
            channel.vmult *= 2.0


def _is_locator(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) == 2
        and all(isinstance(item, int) and not isinstance(item, bool) for item in value)
    )


class ConfigStore:
    """The configuration files in a directory and the settings they produce."""

    def __init__(self, root: Union[str, Path], flash: Optional[FlashStore] = None) -> None:
        self.root = Path(root)
        self.flash = flash
        self.channels: List[InputChannel] = []
        self.device: Optional[DeviceSettings] = None
        self.timezone = TimeZone()
        self.update_class = "NONE"
        self.log_days: Optional[int] = None
        self.outputs: list = []
        self.config_sha256: bytes = b""

    def _resolve(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root / path

    def load(self, path: Union[str, Path]) -> bool:
        """Apply the config file at ``path``; return False if it is unusable."""
        path = self._resolve(path)
        try:
            data = path.read_bytes()
        except OSError:
            log.warning("setConfig: %s open failed.", path)
            return False

        with io.BytesIO(data) as stream:
            self.config_sha256 = hash_file(stream)
            try:
                config = json.loads(json_summary(stream, 1))
            except ValueError:
                config = None
            if not isinstance(config, dict):
                log.warning("Config file parse failed.")
                return False

            def detail(key: str) -> Optional[str]:
                locator = config.get(key)
                return json_detail(stream, locator) if _is_locator(locator) else None

            update = config.get("update")
            self.update_class = update if isinstance(update, str) else "NONE"
            offset = int(60.0 * _number(config.get("timezone")))
            if "logdays" in config:
                self.log_days = _number(config["logdays"], int)

            device_text = detail("device")
            if device_text is not None:
                self.device = configure_device(device_text, self.channels, self.flash)
                self.channels = self.device.channels

            rule = None
            dst_text = detail("dstrule")
            if dst_text is not None:
                try:
                    rule = parse_dst_rule(dst_text)
                except ConfigError as error:
                    log.warning("%s", error)
            self.timezone = TimeZone(offset_minutes=offset, rule=rule)

            inputs_text = detail("inputs")
            if inputs_text is not None:
                try:
                    configure_inputs(self.channels, inputs_text)
                except ConfigError as error:
                    log.warning("%s", error)

            outputs_text = detail("outputs") or "[]"
            try:
                outputs = json.loads(outputs_text)
            except ValueError:
                log.warning("outputs: Json parse failed")
                outputs = []
            self.outputs = outputs if isinstance(outputs, list) else []
        return True

    def update_config(self, new_path: Union[str, Path]) -> bool:
        """Try a new config; on success make it current, keeping the old one.

        On failure the current config is reapplied and False is returned.
        """
        new_path = self._resolve(new_path)
        current = self.root / CONFIG_PATH
        previous = self.root / CONFIG_OLD_PATH
        if self.load(new_path):
            if previous.exists():
                previous.unlink()
            if current.exists():
                current.rename(previous)
            new_path.rename(current)
            return True
        self.load(current)
        return False

    def recover_config(self) -> bool:
        """Fall back to the pending or the previous config after a failure."""
        pending = self.root / CONFIG_NEW_PATH
        if pending.exists() and self.load(pending):
            return self.update_config(pending)
        previous = self.root / CONFIG_OLD_PATH
        if previous.exists() and self.load(previous):
            current = self.root / CONFIG_PATH
            if current.exists():
                current.unlink()
            previous.rename(current)
            log.info("reverting to config-1.")
            return True
        return False