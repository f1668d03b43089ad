# x16periph

Pure-Python models of the peripheral chips of a Commander X16 style machine.
Each device is a plain object with `read`/`write` register methods and, where
the hardware keeps time, a `step` method that advances it by CPU clocks.
The package has no dependencies outside the standard library.

## Devices

| Module | Class | What it models |
| --- | --- | --- |
| `x16periph.vera` | `Vera` | VERA video chip: the 32 CPU registers, scan-out timing, line composition, IRQs |
| `x16periph.vera_fx` | `VideoSpace`, `FxUnit` | 128 KiB video address space and the FX helper (address modes, cache, multiplier, affine) |
| `x16periph.vera_layers` | `LayerProperties`, `SpriteProperties`, `SpriteLine` | tile, text, bitmap and sprite line rendering |
| `x16periph.vera_palette` | `Palette` | 256-entry 12-bit palette and its 24-bit RGB table |
| `x16periph.vera_psg` | `Psg`, `Channel`, `Waveform` | 16-voice programmable sound generator |
| `x16periph.vera_pcm` | `Pcm` | 4 KiB PCM FIFO audio |
| `x16periph.vera_spi` | `VeraSpi` | VERA SPI controller |
| `x16periph.sdcard` | `SdCard` | SD card in SPI mode, backed by an image file |
| `x16periph.via` | `Via` | 65C22 VIA timers and interrupt flags |
| `x16periph.rtc` | `Rtc` | MCP7940N real-time clock and its 64 bytes of NVRAM |
| `x16periph.wav_recorder` | `WavRecorder`, `WavCommand`, `WavState` | writes stereo 16-bit audio to a WAV file |

## Installation

```
pip install .
```

## Examples

Generate a pulse wave on the PSG:

```python
from x16periph.vera_psg import Psg

psg = Psg()
psg.write_register(0, 0x00)   # frequency low
psg.write_register(1, 0x04)   # frequency high
psg.write_register(2, 0xFF)   # left + right, full volume
psg.write_register(3, 0x3F)   # pulse, 50% width
samples = psg.render(64)      # interleaved left/right values
```

Feed the PCM FIFO and render it:

```python
from x16periph.vera_pcm import Pcm

pcm = Pcm()
pcm.write_ctrl(0x0F)          # mono 8-bit, full volume
pcm.write_rate(128)
for byte in (0x10, 0x20, 0x30):
    pcm.write_fifo(byte)
samples = pcm.render(4)
```

Record audio to a WAV file:

```python
from x16periph.wav_recorder import WavRecorder

recorder = WavRecorder(sample_rate=48000)
recorder.set_path("out.wav")  # a ",wait" or ",auto" suffix delays the start
recorder.process(samples)
recorder.shutdown()           # writes the final header sizes
```

Talk to an SD card image through the VERA SPI controller:

```python
from x16periph.sdcard import SdCard
from x16periph.vera_spi import VeraSpi

card = SdCard()
card.set_path("card.img")     # raises OSError if the image cannot be opened
spi = VeraSpi(card)
spi.write(1, 1)               # select the card
spi.write(0, 0x40)            # start of CMD0
spi.step(8)
```

Run a VIA timer until it raises an interrupt:

```python
from x16periph.via import Via

via = Via()
via.write(14, 0xC0)           # enable the timer 1 interrupt
via.write(4, 0x10)            # latch low
via.write(5, 0x00)            # latch high, start the timer
via.step(20)
assert via.irq()
```

Keep time with the RTC:

```python
from x16periph.rtc import Rtc

rtc = Rtc(set_system_time=False, mhz=8)
rtc.write(0, 0x80)            # start the oscillator
rtc.step(8_000_000)           # one second
assert rtc.read(0) == 0x81
```

Drive the video chip and take a frame:

```python
from x16periph.vera import Vera

vera = Vera()
while not vera.step(8, 100):  # advance the beam until a frame completes
    pass
frame = vera.rgb_frame()      # 640x480 packed RGB bytes
```

## What the package does not do

There is no CPU, no memory map tying the devices together, no window, no
keyboard, mouse or joystick input and no audio output device. The devices are
building blocks: a caller wires them up, clocks them and moves samples and
frames wherever they are needed. There is no command-line program. The YM2151
FM sound chip and the I2C, keyboard and serial bus devices are not modelled.

## Running the tests

```
pip install .[test]
pytest
```