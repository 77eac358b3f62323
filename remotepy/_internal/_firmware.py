"""Interpreter loop executed on the remote side.

This file is not imported by remotepy, its source is sent to the remote
interpreter during the handshake. It must only use the standard library and
stay compatible with whatever Python 3 the remote host provides.
"""
import sys
import textwrap

stdin = sys.stdin.buffer
stdout = sys.stdout.buffer
# Keep user output off the frame stream.
sys.stdout = sys.stderr

# Shared between all compiled code, lets stored functions keep handles.
state = {}
stored = {}


def read_int():
    line = stdin.readline()
    if not line:
        raise EOFError()
    return int(line)


def read_message():
    line = stdin.readline()
    if not line:
        return None
    tag = line.rstrip(b"\n").decode("ascii")
    values = []
    for _ in range(read_int()):
        length = read_int()
        data = stdin.read(length)
        if len(data) != length:
            raise EOFError()
        values.append(data.decode("utf-8"))
    return tag, values


def write_message(tag, values=()):
    parts = [tag.encode("ascii"), b"\n", str(len(values)).encode("ascii"), b"\n"]
    for value in values:
        data = value.encode("utf-8")
        parts.append(str(len(data)).encode("ascii") + b"\n")
        parts.append(data)
    stdout.write(b"".join(parts))
    stdout.flush()


def compile_function(name, code):
    try:
        compile(code.strip(), "<%s>" % name, "eval")
    except SyntaxError:
        body = code
    else:
        body = "return (%s)" % code.strip()
    source = "def %s(*args):\n%s\n    pass\n" % (
        "__remote_function", textwrap.indent(textwrap.dedent(body), "    "))
    namespace = {"__name__": "__remote__", "state": state}
    exec(compile(source, "<%s>" % name, "exec"), namespace)
    return namespace["__remote_function"]


def flatten(result):
    if result is None:
        return []
    if isinstance(result, str):
        return [result]
    if isinstance(result, (list, tuple)):
        return [str(v) for v in result]
    return [str(result)]


def handle(tag, args):
    if tag == "EVAL":
        func = compile_function("eval", args[0])
        write_message("RETURNED", flatten(func(*args[1:])))
    elif tag == "STORE":
        stored[args[0]] = compile_function(args[0], args[1])
        write_message("OK")
    elif tag == "CALL":
        name = args[0]
        if name not in stored:
            raise NameError("No such stored function '%s'" % name)
        write_message("RETURNED", flatten(stored[name](*args[1:])))
    else:
        raise ValueError("Unknown message %s" % tag)


def main():
    while True:
        try:
            message = read_message()
        except EOFError:
            break
        if message is None:
            break
        try:
            handle(*message)
        except Exception as e:
            write_message("DIED", ["%s: %s" % (type(e).__name__, e)])


if __name__ == "__main__":
    main()
