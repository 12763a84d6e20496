"""


ESERA 1-Wire Controller Sessions

- Conduit: abstraction of a bi-directional channel. Combines 2 streams for reading and writing.
- Connector: opens a conduit to an endpoint, here the controller's TCP port.
- Session: owns everything known about one connection to a controller
 - line framer - splits the byte stream into lines
 - line classifier - sorts lines into events, device list rows, telemetry and command responses
 - task queue - sends commands one at a time and attributes each response to the command
   outstanding. The controller protocol has no request ids, so at most one command is ever in flight.
 - device directory - maps stable hardware ids to the controller's volatile device ids
 - reading dispatcher - publishes telemetry to subscribers as ReadingEnvelope values
 - session initializer - the start-up script run on every connection
- SessionLoop: runs a session on a background thread, feeding it received bytes and the passing of time.


## Threading

All protocol processing happens on the SessionLoop thread, driven by two triggers: data arrived
and timer expired. Nothing blocks waiting for a response; a command is sent when the task ahead of it
resolves. Callers on other threads enqueue commands or subscribe through the Session, which
serializes them with a lock.

Subscribers are called on the loop thread. A subscriber that blocks stalls the session; one that
raises is logged and the remaining subscribers are still called.


## Restarts

Controller ids are not trusted across connections. On every connect the session discards all state,
resets the controller and reads the device list again. Disconnecting the connector detaches the
session and stops its loop.

"""
