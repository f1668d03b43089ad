"""Models of Commander X16 peripheral chips: VERA video and FX, PSG, PCM, SPI, SD card, VIA, RTC and a WAV recorder."""

__version__ = "0.1.0"