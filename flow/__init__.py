"""
flow

采集结果的存储与导出：
  - store.py    按“索引键 + 每页数据键”两次写入保存采集记录；
  - packager.py 将当前采集序列打包为 .lqaboss（ZIP）流程文件；
  - cli.py      命令行入口（capture/list/export/reset/overlay）。
"""
