"""
Pointing Mount INDI Driver

This module implements an INDI telescope driver around the pointing state
machine. It uses the indipydriver library for INDI communication and ephem
(through `indi_pointing.horizontal`) for horizontal coordinates.

Configuration is loaded from config.yaml.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import time
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Optional, Tuple

from indipydriver import (
    IPyDriver,
    Device,
    SwitchVector,
    SwitchMember,
    TextVector,
    TextMember,
    NumberVector,
    NumberMember,
    LightVector,
    LightMember,
)

try:
    from indipyserver import IPyServer

    HAS_SERVER = True
except ImportError:
    HAS_SERVER = False

from .backends import SimulatedBackend
from .config import load_config
from .exceptions import AdvisoryRejection, InvalidStatusCode, MalformedTransformInput
from .horizontal import (
    check_location,
    equatorial_to_horizontal,
    horizontal_to_equatorial,
)
from .pointing import PointingStateMachine, UnparkPolicy, transition_messages
from .positions import (
    EquatorialPosition,
    GeodeticLocation,
    HorizontalPosition,
    MotionState,
)

logger = logging.getLogger(__name__)

# Quality reported with the coordinates while the mount is moving
_MOVING_STATES = (MotionState.SLEWING, MotionState.PARKING)

# MOUNT_STATUS light for each state: (SLEWING, TRACKING, PARKING, PARKED)
_STATUS_LIGHTS = {
    MotionState.IDLE: ("Idle", "Idle", "Idle", "Idle"),
    MotionState.SLEWING: ("Busy", "Idle", "Idle", "Idle"),
    MotionState.TRACKING: ("Idle", "Ok", "Idle", "Idle"),
    MotionState.PARKING: ("Idle", "Idle", "Busy", "Idle"),
    MotionState.PARKED: ("Idle", "Idle", "Idle", "Ok"),
}


class PointingMountDriver(IPyDriver):
    """
    INDI Driver for a pointing mount.

    Holds the INDI properties, the PointingStateMachine and the active motion
    backend. `hardware()` polls the backend, refreshes horizontal coordinates
    and publishes whatever changed.
    """

    def __init__(
        self,
        driver_name: str = "Pointing Mount",
        config: Optional[Dict[str, Any]] = None,
        backend: Optional[Any] = None,
    ) -> None:
        self.config = config or load_config()
        self.obs_cfg = self.config["observer"]
        self.drv_cfg = self.config["driver"]

        # 1. Define INDI properties
        self._init_properties()

        # 2. Initialize device with properties
        self.device = Device(
            driver_name,
            [
                self.connection_vector,
                self.location_vector,
                self.equatorial_vector,
                self.horizontal_vector,
                self.goto_mode_vector,
                self.park_vector,
                self.unpark_policy_vector,
                self.abort_motion_vector,
                self.motion_ns_vector,
                self.motion_we_vector,
                self.mount_status_vector,
                self.mount_state_vector,
            ],
        )

        super().__init__(self.device)

        # 3. Motion model
        self.backend = backend or SimulatedBackend()
        self.poll_interval = float(self.drv_cfg["poll_interval"])
        self.mount_connected = False
        self.machine = self._new_machine()
        self.site = self.location()

        self._last_state: Optional[MotionState] = None
        self._last_poll: Optional[float] = None
        self._published: Dict[str, Tuple[Any, str]] = {}
        self._pending: Deque[str] = deque()
        self.message_log: Deque[str] = deque(maxlen=30)

        # Publish sink: quantity name -> (vector, member)
        self._sinks = {
            "RA": (self.equatorial_vector, self.ra),
            "DEC": (self.equatorial_vector, self.dec),
            "AZ": (self.horizontal_vector, self.az),
            "ALT": (self.horizontal_vector, self.alt),
            "STATE": (self.mount_state_vector, self.state_text),
        }

    def _init_properties(self) -> None:
        """Initializes all INDI property vectors and members."""
        # Connection
        self.conn_connect = SwitchMember("CONNECT", "Connect", "Off")
        self.conn_disconnect = SwitchMember("DISCONNECT", "Disconnect", "On")
        self.connection_vector = SwitchVector(
            "CONNECTION",
            "Connection",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.conn_connect, self.conn_disconnect],
        )

        # Geographical location
        self.lat = NumberMember(
            "LAT",
            "Latitude (deg)",
            " %06.2f",
            "-90",
            "90",
            "0",
            str(self.obs_cfg.get("latitude", 50.1822)),
        )
        self.long = NumberMember(
            "LONG",
            "Longitude (deg)",
            " %06.2f",
            "-360",
            "360",
            "0",
            str(self.obs_cfg.get("longitude", 19.7925)),
        )
        self.elev = NumberMember(
            "ELEV",
            "Elevation (m)",
            " %04.0f",
            "-1000",
            "10000",
            "0",
            str(self.obs_cfg.get("elevation", 400)),
        )
        self.location_vector = NumberVector(
            "GEOGRAPHIC_COORD",
            "Location",
            "Site",
            "rw",
            "Idle",
            [self.lat, self.long, self.elev],
        )

        # Equatorial coordinates
        start = self.config["initial_position"]
        self.ra = NumberMember(
            "RA", "RA H:M:S", "%10.6m", "0", "24", "0", str(start["ra"])
        )
        self.dec = NumberMember(
            "DEC", "DEC D:M:S", "%10.6m", "-90", "90", "0", str(start["dec"])
        )
        self.equatorial_vector = NumberVector(
            "EQUATORIAL_EOD_COORD",
            "Eq. Coordinates",
            "Main",
            "rw",
            "Idle",
            [self.ra, self.dec],
        )

        # Horizontal coordinates
        self.az = NumberMember("AZ", "Az D:M:S", "%10.6m", "0", "360", "0", "0")
        self.alt = NumberMember("ALT", "Alt D:M:S", "%10.6m", "-90", "90", "0", "0")
        self.horizontal_vector = NumberVector(
            "HORIZONTAL_COORD",
            "Horizontal Coord",
            "Main",
            "rw",
            "Idle",
            [self.az, self.alt],
        )

        # Goto mode: which coordinate write starts a slew
        altaz_mode = str(self.drv_cfg.get("goto_mode", "radec")).lower() == "altaz"
        self.goto_altaz = SwitchMember("ALTAZ", "Alt/Az", "On" if altaz_mode else "Off")
        self.goto_radec = SwitchMember("RADEC", "Ra/Dec", "Off" if altaz_mode else "On")
        self.goto_mode_vector = SwitchVector(
            "GOTOMODE",
            "Goto mode",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            [self.goto_altaz, self.goto_radec],
        )

        # Parking
        self.park_switch = SwitchMember("PARK", "Park", "Off")
        self.unpark_switch = SwitchMember("UNPARK", "Unpark", "On")
        self.park_vector = SwitchVector(
            "TELESCOPE_PARK",
            "Parking",
            "Main",
            "rw",
            "OneOfMany",
            "Idle",
            [self.park_switch, self.unpark_switch],
        )

        tracking_policy = str(self.drv_cfg.get("unpark_policy", "idle")).lower()
        self.unpark_idle = SwitchMember(
            "UNPARK_IDLE", "Idle", "Off" if tracking_policy == "tracking" else "On"
        )
        self.unpark_tracking = SwitchMember(
            "UNPARK_TRACKING",
            "Tracking",
            "On" if tracking_policy == "tracking" else "Off",
        )
        self.unpark_policy_vector = SwitchVector(
            "UNPARK_POLICY",
            "After Unpark",
            "Options",
            "rw",
            "OneOfMany",
            "Idle",
            [self.unpark_idle, self.unpark_tracking],
        )

        # Abort Motion
        self.abort_motion = SwitchMember("ABORT", "Abort", "Off")
        self.abort_motion_vector = SwitchVector(
            "TELESCOPE_ABORT_MOTION",
            "Abort Motion",
            "Main",
            "rw",
            "AtMostOne",
            "Idle",
            [self.abort_motion],
        )

        # Manual motion
        self.motion_n = SwitchMember("MOTION_NORTH", "North", "Off")
        self.motion_s = SwitchMember("MOTION_SOUTH", "South", "Off")
        self.motion_ns_vector = SwitchVector(
            "TELESCOPE_MOTION_NS",
            "Motion N/S",
            "Motion Control",
            "rw",
            "AtMostOne",
            "Idle",
            [self.motion_n, self.motion_s],
        )

        self.motion_w = SwitchMember("MOTION_WEST", "West", "Off")
        self.motion_e = SwitchMember("MOTION_EAST", "East", "Off")
        self.motion_we_vector = SwitchVector(
            "TELESCOPE_MOTION_WE",
            "Motion W/E",
            "Motion Control",
            "rw",
            "AtMostOne",
            "Idle",
            [self.motion_w, self.motion_e],
        )

        # Status indicators
        self.slewing_light = LightMember("SLEWING", "Slewing", "Idle")
        self.tracking_light = LightMember("TRACKING", "Tracking", "Idle")
        self.parking_light = LightMember("PARKING", "Parking", "Idle")
        self.parked_light = LightMember("PARKED", "Parked", "Idle")
        self.mount_status_vector = LightVector(
            "MOUNT_STATUS",
            "Mount Status",
            "Main",
            "Idle",
            [
                self.slewing_light,
                self.tracking_light,
                self.parking_light,
                self.parked_light,
            ],
        )

        self.state_text = TextMember("STATE", "State", MotionState.IDLE.value)
        self.mount_state_vector = TextVector(
            "MOUNT_STATE", "Motion State", "Main", "ro", "Idle", [self.state_text]
        )

    def _new_machine(self) -> PointingStateMachine:
        start = self.config["initial_position"]
        return PointingStateMachine(
            initial=EquatorialPosition(float(start["ra"]), float(start["dec"])),
            slew_rate=float(self.drv_cfg["slew_rate"]),
            unpark_policy=str(self.drv_cfg["unpark_policy"]).lower(),
            notify=self.notify,
        )

    def location(self) -> GeodeticLocation:
        return GeodeticLocation(
            float(self.lat.membervalue),
            float(self.long.membervalue),
            float(self.elev.membervalue),
        )

    # Event and property sinks

    def notify(self, level: int, message: str) -> None:
        """Event sink: logs the message and queues it for the INDI client."""
        logger.log(level, message)
        self.message_log.append(message)
        self._pending.append(message)

    async def flush_messages(self) -> None:
        """Sends queued event messages to the client."""
        while self._pending:
            await self.device.send_device_message(self._pending.popleft())

    async def publish(self, name: str, value: Any, quality: str = "Ok") -> bool:
        """
        Property sink: sends a quantity if its value or quality changed.

        Returns:
            bool: True if the owning vector was sent.
        """
        vector, member = self._sinks[name]
        if self._published.get(name) == (value, quality):
            return False
        self._published[name] = (value, quality)
        member.membervalue = value
        await vector.send_setVector(state=quality)
        return True

    async def _send_status_lights(self, state: MotionState) -> None:
        lights = _STATUS_LIGHTS[state]
        if self._published.get("LIGHTS") == (lights, "Ok"):
            return
        self._published["LIGHTS"] = (lights, "Ok")
        for member, value in zip(
            (
                self.slewing_light,
                self.tracking_light,
                self.parking_light,
                self.parked_light,
            ),
            lights,
        ):
            member.membervalue = value
        await self.mount_status_vector.send_setVector()

    async def _send_park_switches(self) -> None:
        parked = self.machine.is_parked
        if self._published.get("PARK") == (parked, "Ok"):
            return
        self._published["PARK"] = (parked, "Ok")
        self.park_switch.membervalue = "On" if parked else "Off"
        self.unpark_switch.membervalue = "Off" if parked else "On"
        await self.park_vector.send_setVector(state="Ok")

    async def publish_state(
        self, when: Optional[datetime] = None, quality: str = "Ok"
    ) -> HorizontalPosition:
        """Announces transitions and publishes position and state."""
        state = self.machine.state
        for msg in transition_messages(self._last_state, state):
            self.notify(logging.INFO, msg)
        self._last_state = state

        current = self.machine.current
        hz = equatorial_to_horizontal(current, self.location(), when)
        coord_quality = "Busy" if state in _MOVING_STATES else "Ok"

        await self.publish("RA", current.ra, coord_quality)
        await self.publish("DEC", current.dec, coord_quality)
        await self.publish("AZ", hz.azimuth, coord_quality)
        await self.publish("ALT", hz.altitude, coord_quality)
        await self.publish("STATE", state.value, quality)
        await self._send_status_lights(state)
        await self._send_park_switches()

        logger.debug("Current %s %s; state %s", current, hz, state.name)
        await self.flush_messages()
        return hz

    # Polling

    async def poll_once(
        self, elapsed: Optional[float] = None, when: Optional[datetime] = None
    ) -> MotionState:
        """
        One polling step: advance the backend, then publish.

        Args:
            elapsed: Seconds since the previous poll; measured when omitted.
            when: Instant for the horizontal transform; now when omitted.
        """
        if not self.mount_connected:
            return self.machine.state

        now = time.monotonic()
        if elapsed is None:
            elapsed = 0.0 if self._last_poll is None else now - self._last_poll
        self._last_poll = now

        quality = "Ok"
        try:
            await self.backend.step(self.machine, elapsed)
        except InvalidStatusCode as e:
            self.notify(logging.WARNING, str(e))
            quality = "Alert"
        except Exception as e:
            logger.debug("Backend step failed", exc_info=True)
            self.notify(logging.WARNING, f"Error reading mount status: {e}")
            quality = "Alert"

        await self.publish_state(when=when, quality=quality)
        return self.machine.state

    async def hardware(self) -> None:
        """Periodically poll the mount."""
        while True:
            await self.poll_once()
            await asyncio.sleep(self.poll_interval)

    # INDI events

    async def rxevent(self, event: Any) -> None:
        """Main event handler for INDI property updates."""
        if event.vectorname == "CONNECTION":
            await self.handle_connection(event)
        elif event.vectorname == "GEOGRAPHIC_COORD":
            await self.handle_location(event)
        elif event.vectorname == "EQUATORIAL_EOD_COORD":
            await self.handle_equatorial_goto(event)
        elif event.vectorname == "HORIZONTAL_COORD":
            await self.handle_horizontal_goto(event)
        elif event.vectorname == "GOTOMODE":
            await self.handle_goto_mode(event)
        elif event.vectorname == "TELESCOPE_PARK":
            await self.handle_park(event)
        elif event.vectorname == "UNPARK_POLICY":
            await self.handle_unpark_policy(event)
        elif event.vectorname == "TELESCOPE_ABORT_MOTION":
            await self.handle_abort_motion(event)
        elif event.vectorname == "TELESCOPE_MOTION_NS":
            await self.handle_motion(event, self.motion_ns_vector, self.motion_n, self.motion_s)
        elif event.vectorname == "TELESCOPE_MOTION_WE":
            await self.handle_motion(event, self.motion_we_vector, self.motion_w, self.motion_e)

    async def handle_connection(self, event: Any) -> None:
        """Handles CONNECT/DISCONNECT switches."""
        if event is not None:
            self.connection_vector.update(event)

        if self.conn_connect.membervalue == "On":
            self.machine = self._new_machine()
            self.mount_connected = True
            self._last_state = None
            self._last_poll = None
            self._published.clear()
            self.notify(logging.INFO, f"Connected using the {self.backend.name} backend.")
            await self.connection_vector.send_setVector(state="Ok")
            await self.publish_state()
        else:
            self.mount_connected = False
            await self.connection_vector.send_setVector(state="Idle")

    async def _reject_disconnected(self, vector: Any) -> bool:
        if self.mount_connected:
            return False
        self.notify(logging.WARNING, "Mount is not connected.")
        await vector.send_setVector(state="Alert")
        await self.flush_messages()
        return True

    async def _restore_coordinates(self, *names: str) -> None:
        """Puts the mount position back into members overwritten by a request."""
        for name in names:
            self._published.pop(name, None)
        await self.publish_state()

    async def handle_location(self, event: Any) -> None:
        """Validates and stores a new observer location."""
        if event is not None:
            self.location_vector.update(event)
        try:
            check_location(self.location())
        except MalformedTransformInput as e:
            # Fall back to the last accepted location
            self.lat.membervalue = self.site.latitude
            self.long.membervalue = self.site.longitude
            self.elev.membervalue = self.site.elevation
            self.notify(logging.ERROR, str(e))
            await self.location_vector.send_setVector(state="Alert")
            await self.flush_messages()
            return

        self.site = self.location()
        await self.location_vector.send_setVector(state="Ok")
        if self.mount_connected:
            await self.publish_state()

    async def goto(self, target: EquatorialPosition, vector: Any) -> bool:
        """Starts a slew, answering `vector` with Busy, or Alert if refused."""
        names = [name for name, (owner, _) in self._sinks.items() if owner is vector]
        if await self._reject_disconnected(vector):
            await self._restore_coordinates(*names)
            return False
        try:
            self.machine.goto(target)
        except AdvisoryRejection as e:
            self.notify(logging.WARNING, str(e))
        except ValueError as e:
            self.notify(logging.ERROR, str(e))
        else:
            await self._restore_coordinates(*names)
            await vector.send_setVector(state="Busy")
            return True

        await self._restore_coordinates(*names)
        await vector.send_setVector(state="Alert")
        return False

    async def handle_equatorial_goto(self, event: Any) -> None:
        """Handles GoTo using RA/Dec coordinates."""
        if event is not None:
            self.equatorial_vector.update(event)

        # Capture the target before polling overwrites the members
        target = EquatorialPosition(
            float(self.ra.membervalue), float(self.dec.membervalue)
        )
        await self.goto(target, self.equatorial_vector)

    async def handle_horizontal_goto(self, event: Any) -> None:
        """Handles GoTo using Alt/Az coordinates (GOTOMODE ALTAZ only)."""
        if event is not None:
            self.horizontal_vector.update(event)
        if self.goto_altaz.membervalue != "On":
            self.notify(logging.WARNING, "Alt/Az goto requires the Alt/Az goto mode.")
            await self._restore_coordinates("AZ", "ALT")
            await self.horizontal_vector.send_setVector(state="Alert")
            return

        hz = HorizontalPosition(
            float(self.az.membervalue) % 360.0, float(self.alt.membervalue)
        )
        target = horizontal_to_equatorial(hz, self.location())
        await self.goto(target, self.horizontal_vector)

    async def handle_goto_mode(self, event: Any) -> None:
        """Switches between Alt/Az and Ra/Dec goto."""
        if event is not None:
            self.goto_mode_vector.update(event)
        if self.goto_altaz.membervalue == "On":
            self.notify(logging.INFO, "Using AltAz goto.")
        else:
            self.notify(logging.INFO, "Using Ra/Dec goto.")
        await self.goto_mode_vector.send_setVector(state="Ok")
        await self.flush_messages()

    async def handle_park(self, event: Any) -> None:
        """Parks or unparks the mount."""
        if await self._reject_disconnected(self.park_vector):
            return
        if event is not None:
            self.park_vector.update(event)
        if self.park_switch.membervalue == "On":
            self.machine.park()
        elif self.unpark_switch.membervalue == "On":
            self.machine.unpark()
        self._published.pop("PARK", None)
        await self.publish_state()

    async def handle_unpark_policy(self, event: Any) -> None:
        """Selects the state entered after unparking."""
        if event is not None:
            self.unpark_policy_vector.update(event)
        if self.unpark_tracking.membervalue == "On":
            self.machine.unpark_policy = UnparkPolicy.TRACKING
        else:
            self.machine.unpark_policy = UnparkPolicy.IDLE
        await self.unpark_policy_vector.send_setVector(state="Ok")

    async def handle_abort_motion(self, event: Any) -> None:
        """Immediately stops all mount movement."""
        if event is not None:
            self.abort_motion_vector.update(event)
        if self.abort_motion.membervalue == "On":
            self.machine.abort()
            self.abort_motion.membervalue = "Off"
            if self.mount_connected:
                await self.publish_state()
            await self.abort_motion_vector.send_setVector(state="Ok")

    async def handle_motion(self, event: Any, vector: Any, first: Any, second: Any) -> None:
        """Manual motion switches; refused while the mount is parked."""
        if event is not None:
            vector.update(event)
        if self.machine.reject_motion_if_parked():
            first.membervalue = "Off"
            second.membervalue = "Off"
            await vector.send_setVector(state="Alert")
            await self.flush_messages()
            return

        moving = "On" in (first.membervalue, second.membervalue)
        await vector.send_setVector(state="Busy" if moving else "Ok")


def main() -> None:
    """Entry point for the INDI driver."""
    parser = argparse.ArgumentParser(description="Pointing Mount INDI Driver")
    parser.add_argument("-p", "--port", type=int, default=7624, help="INDI port")
    parser.add_argument("-n", "--name", default="Pointing Mount", help="Device name")
    parser.add_argument("-c", "--config", default=None, help="Path to config.yaml")
    parser.add_argument(
        "-s", "--server", action="store_true", help="Start as standalone INDI server"
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable debug logging to stderr"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    driver = PointingMountDriver(driver_name=args.name, config=load_config(args.config))

    if args.server:
        if not HAS_SERVER:
            logger.error("indipyserver not installed. Run: pip install .[server]")
            return
        server = IPyServer(driver, port=args.port)
        asyncio.run(server.asyncrun())
    else:
        asyncio.run(driver.asyncrun())


if __name__ == "__main__":
    main()
