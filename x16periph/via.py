"""The 65C22 Versatile Interface Adapter: registers, timers and interrupt flags."""

from __future__ import annotations

from typing import List

_NUM_REGISTERS = 15

# register numbers
ORB = 0
ORA = 1
DDRB = 2
DDRA = 3
T1C_L = 4
T1C_H = 5
T1L_L = 6
T1L_H = 7
T2C_L = 8
T2C_H = 9
SR = 10
ACR = 11
PCR = 12
IFR = 13
IER = 14
ORA_NO_HANDSHAKE = 15

# interrupt flag bits
IRQ_CA2 = 0x01
IRQ_CA1 = 0x02
IRQ_SR = 0x04
IRQ_CB2 = 0x08
IRQ_CB1 = 0x10
IRQ_T2 = 0x20
IRQ_T1 = 0x40

_WORD_MASK = 0xFFFFFFFF


class Via:
    """A VIA whose ports are not connected: port reads return the output registers."""

    def __init__(self) -> None:
        self._registers: List[int] = [0] * _NUM_REGISTERS
        self._timer_count: List[int] = [0, 0]
        self.pb6_pulse_counts = 0
        self._timer1_m1 = False
        self._timer_running: List[bool] = [False, False]
        self.pb7_output = True
        self.reset()

    def reset(self) -> None:
        """Clear ports, control and interrupt registers; latches, counters and SR survive."""
        for reg in (ORB, ORA, DDRB, DDRA, ACR, PCR, IFR, IER):
            self._registers[reg] = 0
        self._timer_running = [False, False]
        self._timer1_m1 = False
        self.pb7_output = True

    def _clear_pra_irqs(self) -> None:
        regs = self._registers
        regs[IFR] &= ~IRQ_CA1 & 0xFF
        if (regs[PCR] & 0b00001010) != 0b00000010:
            regs[IFR] &= ~IRQ_CA2 & 0xFF

    def _clear_prb_irqs(self) -> None:
        regs = self._registers
        regs[IFR] &= ~IRQ_CB1 & 0xFF
        if (regs[PCR] & 0b10100000) != 0b00100000:
            regs[IFR] &= ~IRQ_CB2 & 0xFF

    def _clear_flag(self, flag: int) -> None:
        self._registers[IFR] &= ~flag & 0xFF

    def read(self, reg: int, debug: bool = False) -> int:
        """Read a register; with ``debug`` set, no interrupt flags are cleared."""
        reg &= 0x0F
        regs = self._registers
        if reg == ORB:
            if not debug:
                self._clear_prb_irqs()
            return regs[ORB]
        if reg in (ORA, ORA_NO_HANDSHAKE):
            if not debug:
                self._clear_pra_irqs()
            return regs[ORA]
        if reg == T1C_L:
            if not debug:
                self._clear_flag(IRQ_T1)
            return self._timer_count[0] & 0xFF
        if reg == T1C_H:
            return (self._timer_count[0] >> 8) & 0xFF
        if reg == T2C_L:
            if not debug:
                self._clear_flag(IRQ_T2)
            return self._timer_count[1] & 0xFF
        if reg == T2C_H:
            return (self._timer_count[1] >> 8) & 0xFF
        if reg == SR:
            if not debug:
                self._clear_flag(IRQ_SR)
            return regs[SR]
        if reg == IFR:
            ifr = regs[IFR]
            pending = (ifr & regs[IER]) != 0
            return (pending << 7) | ifr
        if reg == IER:
            return regs[IER] | 0x80
        return regs[reg]

    def write(self, reg: int, value: int) -> None:
        reg &= 0x0F
        value &= 0xFF
        regs = self._registers
        if reg == ORB:
            self._clear_prb_irqs()
            regs[ORB] = value
        elif reg in (ORA, ORA_NO_HANDSHAKE):
            self._clear_pra_irqs()
            regs[ORA] = value
        elif reg == T1C_L:
            regs[T1L_L] = value
        elif reg in (T1C_H, T1L_H):
            self._clear_flag(IRQ_T1)
            regs[T1L_H] = value
            if reg == T1C_H:
                self._timer_count[0] = (value << 8) | regs[T1L_L]
                self._timer_running[0] = True
                self.pb7_output = False
        elif reg == T2C_H:
            self._clear_flag(IRQ_T2)
            self._timer_count[1] = (value << 8) | regs[T2C_L]
            self._timer_running[1] = True
        elif reg == SR:
            self._clear_flag(IRQ_SR)
            regs[SR] = value
        elif reg == IFR:
            pcr = regs[PCR]
            if (value & IRQ_CA2) and (pcr & 0b00001010) == 0b00000010:
                self._clear_flag(IRQ_CA2)
            if (value & IRQ_CB2) and (pcr & 0b10100000) == 0b00100000:
                self._clear_flag(IRQ_CB2)
        elif reg == IER:
            if value & 0x80:
                regs[IER] |= value & 0x7F
            else:
                regs[IER] &= ~value & 0x7F
        else:
            regs[reg] = value

    def _timer1_latch(self) -> int:
        return (self._registers[T1L_H] << 8) | self._registers[T1L_L]

    def step(self, clocks: int) -> None:
        """Advance both timers by ``clocks`` cycles."""
        acr = self._registers[ACR]
        ifr = self._registers[IFR]

        # timer 1 counts even when it is not "running"
        cnt = self._timer_count[0]
        tclk = clocks
        while tclk > 0:
            if self._timer1_m1:
                reload = self._timer1_latch()
                tclk_s = min(reload + 1, tclk)
                cnt = reload - tclk_s + 1
                self._timer1_m1 = False
            elif cnt < tclk:
                if self._timer_running[0]:
                    ifr |= IRQ_T1
                    self.pb7_output = not self.pb7_output
                    if not acr & 0x40:
                        self._timer_running[0] = False
                if tclk - cnt == 1:
                    # the counter passes through the -1 state before reloading
                    cnt = 0xFFFF
                    self._timer1_m1 = True
                    tclk_s = 1
                else:
                    reload = self._timer1_latch()
                    tclk_s = min(cnt + reload + 2, tclk)
                    cnt += reload - tclk_s + 2
            else:
                cnt -= tclk
                break
            tclk -= tclk_s
        self._timer_count[0] = cnt & _WORD_MASK

        cnt = self._timer_count[1]
        tclk = self.pb6_pulse_counts if acr & 0x20 else clocks
        self.pb6_pulse_counts = 0
        if cnt < tclk:
            if self._timer_running[1]:
                ifr |= IRQ_T2
                self._timer_running[1] = False
            self._timer_count[1] = (0x10000 + cnt - tclk) & _WORD_MASK
        else:
            self._timer_count[1] = cnt - tclk

        self._registers[IFR] = ifr

    def irq(self) -> bool:
        """True while an enabled interrupt flag is set."""
        return (self._registers[IFR] & self._registers[IER]) != 0