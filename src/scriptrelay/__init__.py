"""scriptrelay -- Polling command relay for game-script clients.

Script clients post commands to a central server and other clients poll
for the commands addressed to them. Visibility is decided per poller from
its registered role (admin or alt), the command's target and its age.
"""

__version__ = "0.1.0"
