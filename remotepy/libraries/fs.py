"""Filesystem access on the remote host.

`stat` and `lstat` return `dev ino mode nlink uid gid size atime mtime ctime`.
"""
from remotepy import Library


library = Library("fs")

_stat_fields = '''
    return [str(getattr(st, "st_" + f)) for f in (
        "dev", "ino", "mode", "nlink", "uid", "gid",
        "size", "atime", "mtime", "ctime")]
'''

library.func("stat", '''
    import os
    st = os.stat(args[0])
''' + _stat_fields)

library.func("lstat", '''
    import os
    st = os.lstat(args[0])
''' + _stat_fields)

library.func("exists", '''
    import os
    return "1" if os.path.lexists(args[0]) else ""
''')

library.func("isdir", '''
    import os
    return "1" if os.path.isdir(args[0]) else ""
''')

library.func("mkdir", '''
    import os
    if len(args) > 1:
        os.mkdir(args[0], int(args[1], 8))
    else:
        os.mkdir(args[0])
''')

library.func("rmdir", '''
    import os
    os.rmdir(args[0])
''')

library.func("unlink", '''
    import os
    os.unlink(args[0])
''')

library.func("rename", '''
    import os
    os.rename(args[0], args[1])
''')

library.func("chmod", '''
    import os
    os.chmod(args[0], int(args[1], 8))
''')

library.func("readlink", '''
    import os
    return os.readlink(args[0])
''')

library.func("symlink", '''
    import os
    os.symlink(args[0], args[1])
''')

library.func("readdir", '''
    import os
    return sorted(os.listdir(args[0]))
''')

library.func("read_file", '''
    with open(args[0], encoding="utf-8") as f:
        return f.read()
''')

library.func("write_file", '''
    with open(args[0], "w", encoding="utf-8") as f:
        f.write(args[1])
''')
