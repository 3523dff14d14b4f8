#!/usr/bin/env python3
"""
aethershare.py — AetherShare CLI entry point.

Commands:
  link       <file>     Build a self-contained AETHER| share link
  open       <link>     Open any share link / locator and save the file
  beam-send  <file>     Host a file for one beam receiver, print the BEAM| link
  beam-recv  <link>     Fetch a file from a beam host
  chirp      <text>     Announce a short text (filename) as FSK audio
  listen     [wav]      Demodulate FSK from a WAV file or the microphone

Run `python3 aethershare.py --help` for full usage.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from aether import (
    FailureCode,
    GeoFence,
    LinkAssembler,
    LinkOptions,
    SourceFile,
    __version__,
)
from aether.locator import share_url
from aether.profiles import VIBES, debug_enabled


def _progress(percent: int, done: int, total: int) -> None:
    print(f'\r  {percent:3d}%  {done}/{total} bytes', end='', file=sys.stderr, flush=True)
    if done >= total:
        print(file=sys.stderr)


def _read_link(arg: str) -> str:
    """A link argument may be the link itself or a file holding it."""
    path = Path(arg)
    if len(arg) < 4096 and path.is_file():
        return path.read_text(encoding='utf-8').strip()
    return arg


def _save(data: bytes, filename: str, output: str | None) -> Path:
    out = Path(output) if output else Path(Path(filename).name)
    out.write_bytes(data)
    return out


# ─────────────────────────────────────────────────────────────────────────────
# Sub-command handlers
# ─────────────────────────────────────────────────────────────────────────────

def cmd_link(args: argparse.Namespace):
    file = SourceFile.from_path(args.file)
    geo  = None
    if args.geo:
        lat, lng = (float(v) for v in args.geo.split(','))
        geo = GeoFence(lat=lat, lng=lng)

    options = LinkOptions(
        password=args.password,
        lossy_images=args.lossy,
        quality=args.quality,
        vibe=args.vibe,
        expiry_minutes=args.expire,
        geo=geo,
    )
    print(f'→ Link  {file.name}  {file.size} bytes  '
          f'encrypted={"yes" if args.password else "no"}', file=sys.stderr)

    text = asyncio.run(LinkAssembler().build_inline_link(file, options))
    if args.base_url:
        text = share_url(args.base_url, text)

    if args.output:
        Path(args.output).write_text(text + '\n', encoding='utf-8')
        print(f'✓ Saved: {args.output}  ({len(text)} chars)', file=sys.stderr)
    else:
        print(text)


def cmd_open(args: argparse.Namespace):
    text   = _read_link(args.link)
    result = asyncio.run(LinkAssembler().receive(text, args.password))

    if not result.success:
        hints = {
            FailureCode.NOT_A_LOCATOR:     'no "|" delimiter: this is not a share link',
            FailureCode.PASSWORD_REQUIRED: 'file is encrypted; pass --password',
            FailureCode.WRONG_PASSWORD:    'wrong password (or the link was altered)',
        }
        reason = hints.get(result.failure, result.detail or result.failure.value)
        print(f'✗ {result.failure.value}: {reason}', file=sys.stderr)
        sys.exit(2)

    if result.data is None:
        beam = result.beam
        print(f'→ Beam link: {beam.filename} ({beam.size_hint} bytes) at {beam.peer_address}',
              file=sys.stderr)
        print('  use `beam-recv` to fetch it', file=sys.stderr)
        return

    header = result.header
    out    = _save(result.data, header.filename, args.output)
    extras = []
    if header.vibe:
        extras.append(f'vibe={header.vibe}')
    if header.expiry:
        extras.append(f'expiry={header.expiry}')
    if header.geo:
        extras.append(f'geo={header.geo.lat},{header.geo.lng}±{header.geo.radius:.0f}m')
    print(f'✓ Saved: {out}  ({len(result.data)} bytes, {result.kind})'
          + (f'  [{" ".join(extras)}]' if extras else ''))


def cmd_beam_send(args: argparse.Namespace):
    file = SourceFile.from_path(args.file)

    async def _run():
        assembler = LinkAssembler()
        host      = await assembler.serve_beam(file, args.host, args.port, args.password, _progress)
        advertise = args.advertise or f'127.0.0.1:{host.port}'
        print(assembler.build_beam_link(advertise, file))
        print(f'→ Waiting for a receiver on {args.host}:{host.port}…', file=sys.stderr)
        try:
            sent = await host.wait()
        finally:
            await host.close()
        print(f'✓ Sent {sent} bytes', file=sys.stderr)

    asyncio.run(_run())


def cmd_beam_recv(args: argparse.Namespace):
    text   = _read_link(args.link)
    result = asyncio.run(LinkAssembler().receive_beam(text, args.password, _progress,
                                                      timeout=args.timeout))
    if not result.success:
        print(f'✗ {result.failure.value}: {result.detail}', file=sys.stderr)
        sys.exit(2)
    out = _save(result.data, result.header.filename, args.output)
    print(f'✓ Saved: {out}  ({len(result.data)} bytes)')


def cmd_chirp(args: argparse.Namespace):
    from aether.modem.audio import SpeakerSink, WavSink

    sink = WavSink(args.output) if args.output else SpeakerSink()
    tx   = asyncio.run(LinkAssembler().announce(args.text, sink))
    print(f'✓ {len(tx.bits)} bits  ({tx.duration:.2f}s)  {tx.bits}', file=sys.stderr)


def cmd_listen(args: argparse.Namespace):
    from aether.modem import AcousticListener, demodulate, raw_bits, recover_text
    from aether.modem.audio import MicrophoneSource, read_audio

    if args.input:
        decisions = demodulate(read_audio(args.input))
    else:
        async def _run():
            listener = AcousticListener(MicrophoneSource())
            listener.start_listening(
                on_bit_decided=lambda bit, energy: print(bit, end='', file=sys.stderr, flush=True))
            print(f'→ Listening for {args.seconds:.0f}s…', file=sys.stderr)
            await asyncio.sleep(args.seconds)
            listener.stop_listening()
            decisions = await listener.wait()
            print(file=sys.stderr)
            return decisions

        decisions = asyncio.run(_run())

    if args.raw:
        print(raw_bits(decisions))
        return
    text = recover_text(decisions)
    if text is None:
        print('✗ no preamble found', file=sys.stderr)
        sys.exit(2)
    print(text)


# ─────────────────────────────────────────────────────────────────────────────
# Argument parser
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='aethershare',
        description='AetherShare — share files through links, direct beams and sound.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 aethershare.py link notes.pdf                          # → AETHER|… on stdout
  python3 aethershare.py link photo.png --lossy --password hunter2 --expire 60
  python3 aethershare.py link a.txt --base-url https://example.org/share
  python3 aethershare.py open 'AETHER|eyJ…|KLUv…' --output a.txt
  python3 aethershare.py beam-send big.iso --host 0.0.0.0 --port 7070 --advertise 10.0.0.5:7070
  python3 aethershare.py beam-recv 'BEAM|10.0.0.5:7070|big.iso|734003200'
  python3 aethershare.py chirp a.txt --output chirp.wav
  python3 aethershare.py listen chirp.wav
""",
    )
    p.add_argument('--version', action='version', version=f'aethershare {__version__}')
    sub = p.add_subparsers(dest='command', required=True)

    # ── link ──────────────────────────────────────────────────────────────────
    lnk = sub.add_parser('link', help='Build a self-contained share link for a file.')
    lnk.add_argument('file', help='File to share')
    lnk.add_argument('--password', default=None, help='Encrypt with this password')
    lnk.add_argument('--lossy', action='store_true',
                     help='Re-encode images as WebP before compressing')
    lnk.add_argument('--quality', type=float, default=0.7,
                     help='WebP quality for --lossy, 0–1 (default: 0.7)')
    lnk.add_argument('--vibe', default=None, choices=list(VIBES),
                     help='Receiver theme (carried verbatim)')
    lnk.add_argument('--expire', type=int, default=None, metavar='MINUTES',
                     help='Self-destruct timestamp, minutes from now')
    lnk.add_argument('--geo', default=None, metavar='LAT,LNG',
                     help='Geofence centre (radius 5 km)')
    lnk.add_argument('--base-url', default=None,
                     help='Emit a full URL with the locator in the fragment')
    lnk.add_argument('--output', '-o', default=None, help='Write the link to a file')
    lnk.set_defaults(func=cmd_link)

    # ── open ──────────────────────────────────────────────────────────────────
    opn = sub.add_parser('open', help='Open a share link and save the file.')
    opn.add_argument('link', help='Link, locator, or a file containing one')
    opn.add_argument('--password', default=None)
    opn.add_argument('--output', '-o', default=None,
                     help='Output path (default: the original filename)')
    opn.set_defaults(func=cmd_open)

    # ── beam-send ─────────────────────────────────────────────────────────────
    bsd = sub.add_parser('beam-send', help='Serve a file to one beam receiver.')
    bsd.add_argument('file')
    bsd.add_argument('--host', default='0.0.0.0')
    bsd.add_argument('--port', type=int, default=0, help='0 picks a free port')
    bsd.add_argument('--advertise', default=None, metavar='HOST:PORT',
                     help='Address to put in the link (default: 127.0.0.1:<port>)')
    bsd.add_argument('--password', default=None)
    bsd.set_defaults(func=cmd_beam_send)

    # ── beam-recv ─────────────────────────────────────────────────────────────
    brc = sub.add_parser('beam-recv', help='Fetch a file from a beam host.')
    brc.add_argument('link')
    brc.add_argument('--password', default=None)
    brc.add_argument('--timeout', type=float, default=10.0, help='Connect timeout, seconds')
    brc.add_argument('--output', '-o', default=None)
    brc.set_defaults(func=cmd_beam_recv)

    # ── chirp ─────────────────────────────────────────────────────────────────
    chp = sub.add_parser('chirp', help='Announce text as FSK audio.')
    chp.add_argument('text', help='Text to send (Latin-1 characters only)')
    chp.add_argument('--output', '-o', default=None,
                     help='Write a WAV instead of playing (playback needs sounddevice)')
    chp.set_defaults(func=cmd_chirp)

    # ── listen ────────────────────────────────────────────────────────────────
    lst = sub.add_parser('listen', help='Demodulate FSK from a file or the microphone.')
    lst.add_argument('input', nargs='?', default=None, help='Audio file (default: microphone)')
    lst.add_argument('--seconds', type=float, default=10.0,
                     help='Microphone capture length (default: 10)')
    lst.add_argument('--raw', action='store_true',
                     help='Print the unaligned per-frame bit stream')
    lst.set_defaults(func=cmd_listen)

    return p


# ─────────────────────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────────────────────

def main():
    parser = build_parser()
    args   = parser.parse_args()

    debug = debug_enabled()
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        args.func(args)
    except KeyboardInterrupt:
        print('\n⚠ Interrupted.', file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f'✗ Error: {e}', file=sys.stderr)
        if debug:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
