"""
Controlsurface - MIDI control surfaces for generative visuals and music.

Plug in a knob box, turn a knob, and a named parameter of your renderer
moves.  Controlsurface sits between the host's MIDI ports and whatever
owns your parameters: it decodes the raw stream, keeps a snapshot of the
latest values, maps Control Change messages onto parameter ranges and
pushes the results to a parameter sink.

What it gives you:

- **Hot-plug aware devices.** Ports are tracked as they come and go.  A
  reconnected controller keeps its id and is reopened automatically.
- **Static CC mappings.** ``(channel, cc)`` to a parameter path with a
  ``min``/``max`` range, configured in code or in ``config.yaml``.
- **MIDI Learn.** ``start_learning("gravity")``, turn a knob, done.  Learn
  is exclusive and toggles off when started twice for the same parameter.
  The learned range comes from the parameter's own metadata.
- **Channel filter.** Listen to every channel, one channel, or none.
- **Output.** Send raw messages or Control Changes back to a controller
  (LED rings, motor faders).
- **Status feed.** An optional websocket server that broadcasts the MIDI
  state and parameter values to a browser UI and accepts Learn commands.

Minimal example:

    ```python
    import asyncio
    import controlsurface

    async def main ():
        manager = controlsurface.MidiManager(controlsurface.MidoHost())
        manager.on("parameter_change", lambda name, value: print(name, value))

        if await manager.initialize():
            manager.add_cc_mapping(controlsurface.ControlChangeMapping(0, 1, "gravity", 0.0, 10.0))
            await asyncio.sleep(60)

        manager.stop()

    asyncio.run(main())
    ```

Package-level exports: ``MidiManager``, ``MidoHost``, ``ControlChangeMapping``,
``State``, ``NumberValue``, ``ParameterMeta``.
"""

import controlsurface.host
import controlsurface.manager
import controlsurface.mapping
import controlsurface.parameters


MidiManager = controlsurface.manager.MidiManager
MidoHost = controlsurface.host.MidoHost
ControlChangeMapping = controlsurface.mapping.ControlChangeMapping
State = controlsurface.manager.State
NumberValue = controlsurface.parameters.NumberValue
ParameterMeta = controlsurface.parameters.ParameterMeta
